"""
Customer API endpoints for the loyalty program.

Handles:
- Signup, lookup and login by email
- Balance, tier and ledger history
- Recording earn events and purchases

Domain errors raised by the services are rendered by the app-level
LoyaltyError handler.
"""
from flask import Blueprint, request, jsonify, g

from ..middleware import require_restaurant
from ..services import CustomerService, PointsLedger, classify
from ..utils.errors import ErrorCode, bad_request

customers_bp = Blueprint('customers', __name__)

MAX_HISTORY_LIMIT = 100


# ==============================================================================
# ONBOARDING & LOOKUP
# ==============================================================================

@customers_bp.route('', methods=['POST'])
@require_restaurant
def create_customer():
    """
    Sign up a customer.

    JSON body:
        first_name, last_name, email (required)
        phone, date_of_birth (YYYY-MM-DD) (optional)

    Returns:
        Created customer (201)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')

    customer = CustomerService(g.restaurant_id).create_customer(
        first_name=data.get('first_name'),
        last_name=data.get('last_name'),
        email=data.get('email'),
        phone=data.get('phone'),
        date_of_birth=data.get('date_of_birth'),
    )
    return jsonify({'customer': customer.to_dict()}), 201


@customers_bp.route('/lookup', methods=['GET'])
@require_restaurant
def lookup_customer():
    """Find a customer by email. Returns ``exists: false`` rather than 404."""
    email = request.args.get('email', '').strip()
    if not email:
        return bad_request('email is required', ErrorCode.MISSING_FIELD)

    customer = CustomerService(g.restaurant_id).find_customer_by_email(email)
    return jsonify({
        'exists': customer is not None,
        'customer': customer.to_dict() if customer else None,
    })


@customers_bp.route('/login', methods=['POST'])
@require_restaurant
def login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    customer = CustomerService(g.restaurant_id).login(data.get('email'))
    return jsonify({'customer': customer.to_dict()})


# ==============================================================================
# BALANCE, TIER & HISTORY
# ==============================================================================

@customers_bp.route('/<int:customer_id>', methods=['GET'])
@require_restaurant
def get_customer(customer_id):
    customer = CustomerService(g.restaurant_id).get_customer(customer_id)
    return jsonify({'customer': customer.to_dict()})


@customers_bp.route('/<int:customer_id>/balance', methods=['GET'])
@require_restaurant
def get_balance(customer_id):
    return jsonify(PointsLedger(g.restaurant_id).get_balance(customer_id))


@customers_bp.route('/<int:customer_id>/tier', methods=['GET'])
@require_restaurant
def get_tier(customer_id):
    """Tier classification computed from lifetime points."""
    customer = CustomerService(g.restaurant_id).get_customer(customer_id)
    return jsonify({
        'customer_id': customer.id,
        'lifetime_points': customer.lifetime_points,
        **classify(customer.lifetime_points).to_dict(),
    })


@customers_bp.route('/<int:customer_id>/history', methods=['GET'])
@require_restaurant
def get_history(customer_id):
    """
    Ledger entries, newest first.

    Query params:
        limit: Max entries (default 20, max 100)
        offset: Entries to skip (default 0)
        type: Filter by transaction type
    """
    limit = request.args.get('limit', 20, type=int)
    offset = request.args.get('offset', 0, type=int)
    if limit < 0 or offset < 0:
        return bad_request('limit and offset must not be negative', ErrorCode.INVALID_FIELD)
    limit = min(limit, MAX_HISTORY_LIMIT)

    history = PointsLedger(g.restaurant_id).get_history(
        customer_id,
        limit=limit,
        offset=offset,
        transaction_type=request.args.get('type')
    )
    return jsonify({
        'customer_id': customer_id,
        'transactions': history.to_list(),
        'total': history.count(),
        'limit': limit,
        'offset': offset,
    })


# ==============================================================================
# EARNING
# ==============================================================================

@customers_bp.route('/<int:customer_id>/events', methods=['POST'])
@require_restaurant
def record_event(customer_id):
    """
    Record a ledger event.

    JSON body:
        type: purchase, bonus, referral, signup or redemption (required)
        points: Signed points delta (required)
        reward_id: Reward being redeemed (redemption only)
        description: Optional note
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    for field in ('type', 'points'):
        if data.get(field) is None:
            return bad_request(f'{field} is required', ErrorCode.MISSING_FIELD)

    ledger = PointsLedger(g.restaurant_id)
    entry = ledger.record_event(customer_id, data['type'], data['points'], {
        'description': data.get('description'),
        'reward_id': data.get('reward_id'),
        'created_by': data.get('created_by') or 'staff',
    })
    return jsonify({
        'transaction': entry.to_dict(),
        'balance': ledger.get_balance(customer_id),
    }), 201


@customers_bp.route('/<int:customer_id>/purchases', methods=['POST'])
@require_restaurant
def record_purchase(customer_id):
    """
    Record a purchase at the restaurant's earn rate.

    JSON body:
        amount_spent: Amount in the restaurant's currency (required)
        description: Optional note
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return bad_request('JSON body must be an object')
    if data.get('amount_spent') is None:
        return bad_request('amount_spent is required', ErrorCode.MISSING_FIELD)

    ledger = PointsLedger(g.restaurant_id)
    entry = ledger.record_purchase(
        customer_id,
        data['amount_spent'],
        points_per_currency=g.restaurant.points_per_currency,
        description=data.get('description'),
        created_by=data.get('created_by') or 'staff',
    )
    return jsonify({
        'transaction': entry.to_dict(),
        'points_earned': entry.points,
        'balance': ledger.get_balance(customer_id),
    }), 201
