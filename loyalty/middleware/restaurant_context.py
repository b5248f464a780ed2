"""
Restaurant context middleware.

Every loyalty API call acts on behalf of one restaurant. The restaurant is
named by slug in the X-Restaurant-Slug header or the ``restaurant`` query
parameter.
"""
from functools import wraps
from typing import Optional

from flask import request, g

from ..models import Restaurant
from ..utils.errors import ErrorCode, bad_request, forbidden, not_found


def get_restaurant_slug_from_request() -> Optional[str]:
    """
    Get the restaurant slug from the request.

    Priority:
    1. X-Restaurant-Slug header
    2. restaurant query parameter
    """
    slug = request.headers.get('X-Restaurant-Slug')
    if slug:
        return slug.strip().lower()

    slug = request.args.get('restaurant')
    if slug:
        return slug.strip().lower()

    return None


def require_restaurant(f):
    """
    Decorator resolving the calling restaurant.

    Sets g.restaurant and g.restaurant_id.

    Usage:
        @require_restaurant
        def my_endpoint():
            service = PointsLedger(g.restaurant_id)
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        slug = get_restaurant_slug_from_request()
        if not slug:
            return bad_request(
                'Restaurant is required (X-Restaurant-Slug header or restaurant parameter)',
                ErrorCode.RESTAURANT_REQUIRED
            )

        restaurant = Restaurant.query.filter_by(slug=slug).first()
        if not restaurant:
            return not_found(f"Restaurant '{slug}' not found", ErrorCode.RESTAURANT_NOT_FOUND)

        if not restaurant.is_active:
            return forbidden(f"Restaurant '{slug}' is not active")

        g.restaurant = restaurant
        g.restaurant_id = restaurant.id

        return f(*args, **kwargs)

    return decorated_function
