"""
Loyalty ROI analytics.

Read-only reporting over the points ledger:
- Revenue, reward cost and profit for a period
- Program ROI from returning-customer revenue vs reward cost
- Monthly revenue breakdown
- Customer participation and engagement

ROI Formula: (returning revenue × profit margin − reward cost) / reward cost × 100
Reward cost: points redeemed × point value × COGS percentage
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, PointsTransaction, TransactionType
from ..utils.exceptions import ValidationError
from .loyalty_store import LoyaltyStore


TIME_RANGES = {
    '7d': 7,
    '30d': 30,
    '90d': 90,
}
DEFAULT_TIME_RANGE = '30d'

# Valid (min, max) per ROI setting
ROI_SETTING_BOUNDS = {
    'default_profit_margin': (0.10, 0.80),
    'estimated_cogs_percentage': (0.20, 0.70),
    'target_roi_percentage': (50, 500),
}

ROI_STATUS_NO_DATA = 'no-data'
ROI_STATUS_HIGH = 'high-performing'
ROI_STATUS_PROFITABLE = 'profitable'
ROI_STATUS_LOSING = 'losing-money'


def resolve_date_range(
    time_range: str = None,
    start: str = None,
    end: str = None,
    now: datetime = None
) -> Tuple[datetime, datetime]:
    """
    Turn a preset (7d/30d/90d) or explicit ISO dates into a (start, end) pair.

    Explicit dates win over the preset. A date-only ``end`` covers that
    whole day.
    """
    now = now or datetime.utcnow()

    if start or end:
        start_at = _parse_iso(start, 'start') if start else now - timedelta(days=TIME_RANGES[DEFAULT_TIME_RANGE])
        end_at = _parse_iso(end, 'end') if end else now
        if end and len(end.strip()) == 10:
            end_at = end_at + timedelta(days=1) - timedelta(microseconds=1)
        if start_at > end_at:
            raise ValidationError("start must not be after end", field='start')
        return start_at, end_at

    time_range = time_range or DEFAULT_TIME_RANGE
    if time_range not in TIME_RANGES:
        raise ValidationError(
            f"Invalid time_range '{time_range}'. Must be one of: {list(TIME_RANGES)}",
            field='time_range'
        )
    return now - timedelta(days=TIME_RANGES[time_range]), now


def _parse_iso(value: str, field: str) -> datetime:
    """Parse an ISO date; offset-bearing values are converted to naive UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date", field=field)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _percent(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


class LoyaltyAnalyticsService:
    """
    ROI and engagement analytics for one restaurant.

    Usage:
        service = LoyaltyAnalyticsService(restaurant_id)
        start, end = resolve_date_range('30d')
        metrics = service.get_loyalty_roi_metrics(start, end)
    """

    def __init__(self, restaurant_id: int, store: LoyaltyStore = None):
        self.restaurant_id = restaurant_id
        self.store = store or LoyaltyStore(restaurant_id)

    # ==================== ROI SETTINGS ====================

    def get_roi_settings(self) -> Dict[str, float]:
        restaurant = self.store.load_restaurant()
        defaults = current_app.config['DEFAULT_ROI_SETTINGS']
        settings = {}
        for key in ROI_SETTING_BOUNDS:
            value = getattr(restaurant, key)
            settings[key] = float(value) if value is not None else float(defaults[key])
        return settings

    def update_roi_settings(self, **values) -> Dict[str, float]:
        """
        Update any of the ROI settings.

        Raises:
            ValidationError: unknown setting, non-numeric or out-of-range value
        """
        restaurant = self.store.load_restaurant()

        validated = {}
        for key, value in values.items():
            if key not in ROI_SETTING_BOUNDS:
                raise ValidationError(f"Unknown ROI setting '{key}'", field=key)
            if isinstance(value, bool):
                raise ValidationError(f"{key} must be a number", field=key)
            try:
                number = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be a number", field=key)
            low, high = ROI_SETTING_BOUNDS[key]
            if not low <= number <= high:
                raise ValidationError(f"{key} must be between {low} and {high}", field=key)
            validated[key] = Decimal(str(number))

        for key, value in validated.items():
            setattr(restaurant, key, value)
        self.store.commit('roi settings update')
        current_app.logger.info(f"ROI settings updated for restaurant {self.restaurant_id}: {values}")
        return self.get_roi_settings()

    # ==================== ROI METRICS ====================

    def get_loyalty_roi_metrics(self, start: datetime, end: datetime) -> Dict[str, Any]:
        restaurant = self.store.load_restaurant()
        settings = self.get_roi_settings()
        margin = settings['default_profit_margin']
        cogs = settings['estimated_cogs_percentage']
        target_roi = settings['target_roi_percentage']
        point_value = restaurant.point_value

        purchases = self._purchases(start, end)
        first_purchase_ids = self._first_purchase_ids()

        gross_revenue = sum(float(p.amount_spent or 0) for p in purchases)
        returning_revenue = sum(
            float(p.amount_spent or 0) for p in purchases if p.id not in first_purchase_ids
        )
        estimated_gross_profit = gross_revenue * margin

        points_issued = self._points_issued(start, end)
        points_redeemed = self._points_redeemed(start, end)

        reward_cost = points_redeemed * point_value * cogs
        net_revenue = gross_revenue - reward_cost
        net_profit = estimated_gross_profit - reward_cost

        roi = None
        if reward_cost > 0:
            roi = round((returning_revenue * margin - reward_cost) / reward_cost * 100, 2)

        roi_status = self._roi_status(gross_revenue, roi, target_roi)

        purchases_by_customer = defaultdict(list)
        for purchase in purchases:
            purchases_by_customer[purchase.customer_id].append(float(purchase.amount_spent or 0))
        repeat_amounts = [
            amount
            for amounts in purchases_by_customer.values() if len(amounts) >= 2
            for amount in amounts
        ]
        repeat_customers = sum(1 for amounts in purchases_by_customer.values() if len(amounts) >= 2)
        purchasing_customers = len(purchases_by_customer)

        outstanding_points = db.session.query(
            func.coalesce(func.sum(Customer.total_points), 0)
        ).filter(Customer.restaurant_id == self.restaurant_id).scalar()

        average_total_spent = db.session.query(
            func.avg(Customer.total_spent)
        ).filter(Customer.restaurant_id == self.restaurant_id).scalar()

        return {
            'period': {'start': start.isoformat(), 'end': end.isoformat()},
            'currency': restaurant.currency,
            'gross_revenue': round(gross_revenue, 2),
            'estimated_gross_profit': round(estimated_gross_profit, 2),
            'profit_margin': round(margin * 100, 2),
            'total_points_issued': points_issued,
            'total_points_redeemed': points_redeemed,
            'reward_cost': round(reward_cost, 2),
            'reward_cost_percentage': _percent(reward_cost, gross_revenue),
            'net_revenue': round(net_revenue, 2),
            'net_profit': round(net_profit, 2),
            'returning_revenue': round(returning_revenue, 2),
            'roi': roi,
            'roi_status': roi_status,
            'roi_summary_text': self._roi_summary(roi_status, roi, returning_revenue, margin, reward_cost,
                                                  restaurant.currency),
            'target_roi_percentage': target_roi,
            'total_reward_liability': round(float(outstanding_points) * point_value, 2),
            'point_redemption_rate': _percent(points_redeemed, points_issued),
            'average_order_value': round(gross_revenue / len(purchases), 2) if purchases else 0.0,
            'loyalty_aov': round(sum(repeat_amounts) / len(repeat_amounts), 2) if repeat_amounts else 0.0,
            'repeat_purchase_rate': _percent(repeat_customers, purchasing_customers),
            'purchase_frequency': round(len(purchases) / purchasing_customers, 2) if purchasing_customers else 0.0,
            'customer_lifetime_value': round(float(average_total_spent or 0), 2),
        }

    def get_revenue_breakdown(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Monthly gross revenue, reward cost and net profit, oldest month first."""
        restaurant = self.store.load_restaurant()
        settings = self.get_roi_settings()
        margin = settings['default_profit_margin']
        unit_cost = restaurant.point_value * settings['estimated_cogs_percentage']

        months = defaultdict(lambda: {'gross_revenue': 0.0, 'reward_cost': 0.0})
        for purchase in self._purchases(start, end):
            months[purchase.created_at.strftime('%Y-%m')]['gross_revenue'] += float(purchase.amount_spent or 0)
        for redemption in self._entries(start, end, TransactionType.REDEMPTION):
            months[redemption.created_at.strftime('%Y-%m')]['reward_cost'] += abs(redemption.points) * unit_cost

        return [
            {
                'month': month,
                'gross_revenue': round(values['gross_revenue'], 2),
                'reward_cost': round(values['reward_cost'], 2),
                'net_profit': round(values['gross_revenue'] * margin - values['reward_cost'], 2),
            }
            for month, values in sorted(months.items())
        ]

    # ==================== CUSTOMER BEHAVIOR ====================

    def get_customer_behavior_metrics(self, start: datetime, end: datetime) -> Dict[str, Any]:
        total_customers = Customer.query.filter_by(restaurant_id=self.restaurant_id).count()

        active_ids = {
            customer_id for (customer_id,) in db.session.query(
                PointsTransaction.customer_id
            ).filter(
                PointsTransaction.restaurant_id == self.restaurant_id,
                PointsTransaction.created_at >= start,
                PointsTransaction.created_at <= end
            ).distinct()
        }

        new_customers = Customer.query.filter(
            Customer.restaurant_id == self.restaurant_id,
            Customer.created_at >= start,
            Customer.created_at <= end
        ).count()

        returning_customers = 0
        if active_ids:
            returning_customers = Customer.query.filter(
                Customer.restaurant_id == self.restaurant_id,
                Customer.id.in_(active_ids),
                Customer.created_at < start
            ).count()

        active_count = len(active_ids)
        points_issued = self._points_issued(start, end)
        points_redeemed = self._points_redeemed(start, end)

        return {
            'total_customers': total_customers,
            'active_customers': active_count,
            'loyalty_participation': _percent(active_count, total_customers),
            'new_customers': new_customers,
            'returning_customers': returning_customers,
            'average_points_earned': round(points_issued / active_count, 2) if active_count else 0.0,
            'average_points_redeemed': round(points_redeemed / active_count, 2) if active_count else 0.0,
        }

    # ==================== HELPERS ====================

    def _entries(self, start: datetime, end: datetime, transaction_type: TransactionType):
        return PointsTransaction.query.filter(
            PointsTransaction.restaurant_id == self.restaurant_id,
            PointsTransaction.transaction_type == transaction_type.value,
            PointsTransaction.created_at >= start,
            PointsTransaction.created_at <= end
        ).order_by(PointsTransaction.created_at.asc()).all()

    def _purchases(self, start: datetime, end: datetime) -> List[PointsTransaction]:
        return self._entries(start, end, TransactionType.PURCHASE)

    def _first_purchase_ids(self) -> set:
        """Ledger ids of every customer's first-ever purchase."""
        rows = db.session.query(
            func.min(PointsTransaction.id)
        ).filter(
            PointsTransaction.restaurant_id == self.restaurant_id,
            PointsTransaction.transaction_type == TransactionType.PURCHASE.value
        ).group_by(PointsTransaction.customer_id).all()
        return {row[0] for row in rows}

    def _points_issued(self, start: datetime, end: datetime) -> int:
        return int(db.session.query(
            func.coalesce(func.sum(PointsTransaction.points), 0)
        ).filter(
            PointsTransaction.restaurant_id == self.restaurant_id,
            PointsTransaction.points > 0,
            PointsTransaction.created_at >= start,
            PointsTransaction.created_at <= end
        ).scalar())

    def _points_redeemed(self, start: datetime, end: datetime) -> int:
        return int(db.session.query(
            func.coalesce(func.sum(func.abs(PointsTransaction.points)), 0)
        ).filter(
            PointsTransaction.restaurant_id == self.restaurant_id,
            PointsTransaction.transaction_type == TransactionType.REDEMPTION.value,
            PointsTransaction.created_at >= start,
            PointsTransaction.created_at <= end
        ).scalar())

    @staticmethod
    def _roi_status(gross_revenue: float, roi: Optional[float], target_roi: float) -> str:
        if not gross_revenue or roi is None:
            return ROI_STATUS_NO_DATA
        if roi >= target_roi:
            return ROI_STATUS_HIGH
        if roi >= 0:
            return ROI_STATUS_PROFITABLE
        return ROI_STATUS_LOSING

    @staticmethod
    def _roi_summary(
        status: str,
        roi: Optional[float],
        returning_revenue: float,
        margin: float,
        reward_cost: float,
        currency: str
    ) -> str:
        if status == ROI_STATUS_NO_DATA:
            return "Not enough purchases and redemptions in this period to calculate ROI yet."
        returned = returning_revenue * margin / reward_cost
        summary = (
            f"Every {currency} 1.00 spent on rewards brought back {currency} {returned:.2f} "
            f"in profit from returning customers ({roi:.0f}% ROI)."
        )
        if status == ROI_STATUS_HIGH:
            return summary + " The program is beating its ROI target."
        if status == ROI_STATUS_PROFITABLE:
            return summary + " The program is profitable but below its ROI target."
        return summary + " Rewards currently cost more than the profit they bring back."
