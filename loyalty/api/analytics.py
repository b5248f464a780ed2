"""
Loyalty ROI analytics API.

Query params shared by the report endpoints:
    time_range: 7d, 30d or 90d (default 30d)
    start, end: explicit ISO dates, override time_range
"""
from flask import Blueprint, request, jsonify, g

from ..middleware import require_restaurant
from ..services import LoyaltyAnalyticsService, resolve_date_range
from ..utils.errors import bad_request

analytics_bp = Blueprint('analytics', __name__)


def _date_range():
    return resolve_date_range(
        time_range=request.args.get('time_range'),
        start=request.args.get('start'),
        end=request.args.get('end'),
    )


@analytics_bp.route('/roi', methods=['GET'])
@require_restaurant
def roi_metrics():
    start, end = _date_range()
    metrics = LoyaltyAnalyticsService(g.restaurant_id).get_loyalty_roi_metrics(start, end)
    return jsonify({'metrics': metrics})


@analytics_bp.route('/revenue-breakdown', methods=['GET'])
@require_restaurant
def revenue_breakdown():
    start, end = _date_range()
    breakdown = LoyaltyAnalyticsService(g.restaurant_id).get_revenue_breakdown(start, end)
    return jsonify({'breakdown': breakdown})


@analytics_bp.route('/customer-behavior', methods=['GET'])
@require_restaurant
def customer_behavior():
    start, end = _date_range()
    behavior = LoyaltyAnalyticsService(g.restaurant_id).get_customer_behavior_metrics(start, end)
    return jsonify({'behavior': behavior})


@analytics_bp.route('/roi-settings', methods=['GET'])
@require_restaurant
def get_roi_settings():
    return jsonify({'settings': LoyaltyAnalyticsService(g.restaurant_id).get_roi_settings()})


@analytics_bp.route('/roi-settings', methods=['PUT'])
@require_restaurant
def update_roi_settings():
    """
    Update ROI settings.

    JSON body (any of):
        default_profit_margin: 0.10 - 0.80
        estimated_cogs_percentage: 0.20 - 0.70
        target_roi_percentage: 50 - 500
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    settings = LoyaltyAnalyticsService(g.restaurant_id).update_roi_settings(**data)
    return jsonify({'settings': settings})
