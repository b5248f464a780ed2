"""
Rewards API endpoints for the loyalty program.

Handles:
- Rewards catalog management (restaurant staff)
- Eligible rewards for a customer
- Reward redemption
"""
from flask import Blueprint, request, jsonify, g

from ..middleware import require_restaurant
from ..services import RewardCatalogService, RedemptionService, CustomerService
from ..utils.errors import ErrorCode, bad_request

rewards_bp = Blueprint('rewards', __name__)


# ==============================================================================
# REWARDS CATALOG
# ==============================================================================

@rewards_bp.route('', methods=['GET'])
@require_restaurant
def list_rewards():
    """
    List the catalog in display order.

    Query params:
        include_inactive: Include inactive rewards (default false)
    """
    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'
    rewards = RewardCatalogService(g.restaurant_id).list_rewards(include_inactive=include_inactive)
    return jsonify({
        'rewards': [reward.to_dict() for reward in rewards],
        'count': len(rewards),
    })


@rewards_bp.route('', methods=['POST'])
@require_restaurant
def create_reward():
    """
    Create a reward.

    JSON body:
        name: Reward name (required)
        points_required: Point cost (required, positive)
        min_tier: bronze, silver or gold (default bronze)
        description, category, total_available, display_order, is_active
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    reward = RewardCatalogService(g.restaurant_id).create_reward(data)
    return jsonify({'reward': reward.to_dict()}), 201


@rewards_bp.route('/<int:reward_id>', methods=['PUT'])
@require_restaurant
def update_reward(reward_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    reward = RewardCatalogService(g.restaurant_id).update_reward(reward_id, data)
    return jsonify({'reward': reward.to_dict()})


@rewards_bp.route('/<int:reward_id>/toggle', methods=['POST'])
@require_restaurant
def toggle_reward(reward_id):
    reward = RewardCatalogService(g.restaurant_id).toggle_reward(reward_id)
    return jsonify({'reward': reward.to_dict()})


# ==============================================================================
# CUSTOMER-FACING
# ==============================================================================

@rewards_bp.route('/eligible', methods=['GET'])
@require_restaurant
def eligible_rewards():
    """
    Active catalog annotated for one customer.

    Query params:
        customer_id: Customer ID (required)

    Returns:
        ``rewards`` with per-reward ``can_redeem`` and ``eligible`` holding
        only the redeemable ones, both in catalog order.
    """
    customer_id = request.args.get('customer_id', type=int)
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    catalog = RewardCatalogService(g.restaurant_id).catalog_for_customer(customer_id)
    return jsonify({
        'customer_id': customer_id,
        'rewards': catalog,
        'eligible': [reward for reward in catalog if reward['can_redeem']],
    })


@rewards_bp.route('/<int:reward_id>/redeem', methods=['POST'])
@require_restaurant
def redeem_reward(reward_id):
    """
    Redeem a reward for a customer.

    JSON body:
        customer_id: Customer ID (required)

    Returns:
        The redemption ledger entry and the customer's refreshed state (201)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    customer_id = data.get('customer_id')
    if customer_id is None:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)
    try:
        customer_id = int(customer_id)
    except (TypeError, ValueError):
        return bad_request('customer_id must be an integer', ErrorCode.INVALID_FIELD)

    transaction = RedemptionService(g.restaurant_id).redeem(customer_id, reward_id)
    customer = CustomerService(g.restaurant_id).get_customer(customer_id)

    return jsonify({
        'success': True,
        'transaction': transaction.to_dict(),
        'customer': customer.to_dict(),
    }), 201
