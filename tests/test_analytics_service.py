"""
Tests for loyalty ROI analytics.

Uses the default ROI settings (30% margin, 40% COGS, 200% target) and the
test restaurant's point value of 0.05.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from loyalty.extensions import db
from loyalty.models import PointsTransaction
from loyalty.services.analytics_service import (
    LoyaltyAnalyticsService,
    resolve_date_range,
    ROI_STATUS_HIGH,
    ROI_STATUS_LOSING,
    ROI_STATUS_NO_DATA,
    ROI_STATUS_PROFITABLE,
)
from loyalty.services.customer_service import CustomerService
from loyalty.services.points_ledger import PointsLedger
from loyalty.services.redemption_service import RedemptionService
from loyalty.utils.exceptions import ValidationError
from tests.factories import make_customer, make_reward


NOW = datetime(2026, 3, 15, 12, 0, 0)


def last_30_days():
    return resolve_date_range('30d')


def add_entry(restaurant, customer, transaction_type, points, created_at, amount_spent=None):
    entry = PointsTransaction(
        restaurant_id=restaurant.id,
        customer_id=customer.id,
        transaction_type=transaction_type,
        points=points,
        amount_spent=amount_spent,
        created_at=created_at,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


class TestResolveDateRange:

    def test_preset(self):
        start, end = resolve_date_range('7d', now=NOW)
        assert end == NOW
        assert start == NOW - timedelta(days=7)

    def test_default_is_30_days(self):
        start, end = resolve_date_range(now=NOW)
        assert end - start == timedelta(days=30)

    def test_unknown_preset_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_date_range('1y', now=NOW)
        assert exc_info.value.field == 'time_range'

    def test_explicit_dates_win_over_preset(self):
        start, end = resolve_date_range('7d', start='2026-01-01T00:00:00', end='2026-01-31T18:30:00', now=NOW)
        assert start == datetime(2026, 1, 1)
        assert end == datetime(2026, 1, 31, 18, 30)

    def test_date_only_end_covers_whole_day(self):
        _, end = resolve_date_range(start='2026-01-01', end='2026-01-31', now=NOW)
        assert end.date() == datetime(2026, 1, 31).date()
        assert end.hour == 23 and end.minute == 59

    def test_offset_start_without_end(self):
        start, end = resolve_date_range(start='2026-01-01T04:00:00+04:00', now=NOW)
        assert start == datetime(2026, 1, 1)
        assert start.tzinfo is None
        assert end == NOW

    def test_offset_start_and_end_converted_to_utc(self):
        start, end = resolve_date_range(
            start='2026-01-01T00:00:00+00:00', end='2026-01-31T18:30:00-02:00', now=NOW
        )
        assert start == datetime(2026, 1, 1)
        assert end == datetime(2026, 1, 31, 20, 30)

    def test_start_after_end_rejected(self):
        with pytest.raises(ValidationError):
            resolve_date_range(start='2026-02-01', end='2026-01-01', now=NOW)

    def test_malformed_date_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            resolve_date_range(start='last tuesday', now=NOW)
        assert exc_info.value.field == 'start'


class TestRoiSettings:

    def test_defaults_from_config(self, restaurant):
        assert LoyaltyAnalyticsService(restaurant.id).get_roi_settings() == {
            'default_profit_margin': 0.30,
            'estimated_cogs_percentage': 0.40,
            'target_roi_percentage': 200.0,
        }

    def test_update_persists(self, restaurant):
        service = LoyaltyAnalyticsService(restaurant.id)
        settings = service.update_roi_settings(default_profit_margin=0.45, target_roi_percentage='150')

        assert settings['default_profit_margin'] == pytest.approx(0.45)
        assert settings['target_roi_percentage'] == pytest.approx(150.0)
        assert settings['estimated_cogs_percentage'] == pytest.approx(0.40)
        assert restaurant.default_profit_margin == Decimal('0.45')

    @pytest.mark.parametrize('key, value', [
        ('default_profit_margin', 0.05),
        ('default_profit_margin', 0.85),
        ('estimated_cogs_percentage', 0.75),
        ('target_roi_percentage', 40),
        ('target_roi_percentage', 'lots'),
        ('target_roi_percentage', True),
    ])
    def test_invalid_values_rejected(self, restaurant, key, value):
        with pytest.raises(ValidationError) as exc_info:
            LoyaltyAnalyticsService(restaurant.id).update_roi_settings(**{key: value})
        assert exc_info.value.field == key

    def test_unknown_setting_rejected(self, restaurant):
        with pytest.raises(ValidationError):
            LoyaltyAnalyticsService(restaurant.id).update_roi_settings(discount_rate=0.1)


class TestRoiMetrics:

    def test_no_activity_reports_no_data(self, restaurant, customer):
        metrics = LoyaltyAnalyticsService(restaurant.id).get_loyalty_roi_metrics(*last_30_days())

        assert metrics['gross_revenue'] == 0
        assert metrics['roi'] is None
        assert metrics['roi_status'] == ROI_STATUS_NO_DATA
        assert metrics['roi_summary_text'].startswith('Not enough purchases')
        assert metrics['average_order_value'] == 0.0
        assert metrics['repeat_purchase_rate'] == 0.0

    def test_full_metrics(self, restaurant, customer):
        dessert = make_reward(restaurant, points_required=150)
        ledger = PointsLedger(restaurant.id)
        ledger.record_purchase(customer.id, 1000, points_per_currency=0.1)   # first purchase
        ledger.record_purchase(customer.id, 500, points_per_currency=0.1)    # returning
        RedemptionService(restaurant.id).redeem(customer.id, dessert.id)

        metrics = LoyaltyAnalyticsService(restaurant.id).get_loyalty_roi_metrics(*last_30_days())

        # reward cost = 150 pts x 0.05 x 0.40 = 3.00
        # ROI = (500 x 0.30 - 3) / 3 x 100 = 4900%
        assert metrics['currency'] == 'AED'
        assert metrics['gross_revenue'] == pytest.approx(1500.0)
        assert metrics['estimated_gross_profit'] == pytest.approx(450.0)
        assert metrics['profit_margin'] == pytest.approx(30.0)
        assert metrics['total_points_issued'] == 150
        assert metrics['total_points_redeemed'] == 150
        assert metrics['reward_cost'] == pytest.approx(3.0)
        assert metrics['reward_cost_percentage'] == pytest.approx(0.2)
        assert metrics['net_revenue'] == pytest.approx(1497.0)
        assert metrics['net_profit'] == pytest.approx(447.0)
        assert metrics['returning_revenue'] == pytest.approx(500.0)
        assert metrics['roi'] == pytest.approx(4900.0)
        assert metrics['roi_status'] == ROI_STATUS_HIGH
        assert 'beating its ROI target' in metrics['roi_summary_text']
        assert metrics['point_redemption_rate'] == pytest.approx(100.0)
        assert metrics['average_order_value'] == pytest.approx(750.0)
        assert metrics['loyalty_aov'] == pytest.approx(750.0)
        assert metrics['repeat_purchase_rate'] == pytest.approx(100.0)
        assert metrics['purchase_frequency'] == pytest.approx(2.0)
        # 250 + 150 earned - 150 redeemed = 250 outstanding x 0.05
        assert metrics['total_reward_liability'] == pytest.approx(12.5)
        assert metrics['customer_lifetime_value'] == pytest.approx(1500.0)

    def test_roi_below_target_is_profitable(self, restaurant, customer):
        coffee = make_reward(restaurant, name='Free Coffee', points_required=100)
        ledger = PointsLedger(restaurant.id)
        ledger.record_purchase(customer.id, 100, points_per_currency=0.1)
        ledger.record_purchase(customer.id, 10, points_per_currency=0.1)
        RedemptionService(restaurant.id).redeem(customer.id, coffee.id)

        metrics = LoyaltyAnalyticsService(restaurant.id).get_loyalty_roi_metrics(*last_30_days())

        # (10 x 0.30 - 2) / 2 x 100
        assert metrics['roi'] == pytest.approx(50.0)
        assert metrics['roi_status'] == ROI_STATUS_PROFITABLE

    def test_first_time_spend_only_is_losing_money(self, restaurant, customer):
        coffee = make_reward(restaurant, name='Free Coffee', points_required=100)
        PointsLedger(restaurant.id).record_purchase(customer.id, 100, points_per_currency=0.1)
        RedemptionService(restaurant.id).redeem(customer.id, coffee.id)

        metrics = LoyaltyAnalyticsService(restaurant.id).get_loyalty_roi_metrics(*last_30_days())

        assert metrics['returning_revenue'] == 0
        assert metrics['roi'] == pytest.approx(-100.0)
        assert metrics['roi_status'] == ROI_STATUS_LOSING

    def test_target_comes_from_settings(self, restaurant, customer):
        service = LoyaltyAnalyticsService(restaurant.id)
        service.update_roi_settings(target_roi_percentage=500)
        assert service.get_loyalty_roi_metrics(*last_30_days())['target_roi_percentage'] == 500.0

    def test_entries_outside_period_ignored(self, restaurant, customer):
        add_entry(restaurant, customer, 'purchase', 10, NOW - timedelta(days=90), Decimal('100'))

        metrics = LoyaltyAnalyticsService(restaurant.id).get_loyalty_roi_metrics(
            *resolve_date_range('7d', now=NOW)
        )
        assert metrics['gross_revenue'] == 0
        assert metrics['total_points_issued'] == 0


class TestRevenueBreakdown:

    def test_grouped_by_month_oldest_first(self, restaurant, customer):
        add_entry(restaurant, customer, 'purchase', 20, datetime(2026, 2, 3), Decimal('200'))
        add_entry(restaurant, customer, 'purchase', 10, datetime(2026, 1, 10), Decimal('100'))
        add_entry(restaurant, customer, 'purchase', 5, datetime(2026, 1, 20), Decimal('50'))
        add_entry(restaurant, customer, 'redemption', -100, datetime(2026, 2, 14))

        breakdown = LoyaltyAnalyticsService(restaurant.id).get_revenue_breakdown(
            datetime(2026, 1, 1), datetime(2026, 2, 28, 23, 59)
        )

        assert [row['month'] for row in breakdown] == ['2026-01', '2026-02']
        january, february = breakdown
        assert january['gross_revenue'] == pytest.approx(150.0)
        assert january['reward_cost'] == 0
        assert january['net_profit'] == pytest.approx(45.0)
        assert february['gross_revenue'] == pytest.approx(200.0)
        assert february['reward_cost'] == pytest.approx(2.0)
        assert february['net_profit'] == pytest.approx(58.0)

    def test_empty_period(self, restaurant):
        breakdown = LoyaltyAnalyticsService(restaurant.id).get_revenue_breakdown(*last_30_days())
        assert breakdown == []


class TestCustomerBehavior:

    def test_participation_and_returning_customers(self, restaurant):
        long_ago = datetime.utcnow() - timedelta(days=60)
        regular = make_customer(restaurant, email='regular@example.com')
        dormant = make_customer(restaurant, email='dormant@example.com')
        regular.created_at = long_ago
        dormant.created_at = long_ago
        db.session.commit()

        PointsLedger(restaurant.id).record_event(regular.id, 'bonus', 100)
        CustomerService(restaurant.id).create_customer('Omar', 'Haddad', 'omar@example.com')

        behavior = LoyaltyAnalyticsService(restaurant.id).get_customer_behavior_metrics(*last_30_days())

        assert behavior['total_customers'] == 3
        assert behavior['active_customers'] == 2
        assert behavior['loyalty_participation'] == pytest.approx(66.67)
        assert behavior['new_customers'] == 1
        assert behavior['returning_customers'] == 1
        assert behavior['average_points_earned'] == pytest.approx(50.0)
        assert behavior['average_points_redeemed'] == 0.0

    def test_no_customers(self, restaurant):
        behavior = LoyaltyAnalyticsService(restaurant.id).get_customer_behavior_metrics(*last_30_days())
        assert behavior['total_customers'] == 0
        assert behavior['loyalty_participation'] == 0.0
        assert behavior['average_points_earned'] == 0.0
