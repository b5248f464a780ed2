"""
Middleware package for the loyalty API.
"""
from .restaurant_context import require_restaurant, get_restaurant_slug_from_request

__all__ = ['require_restaurant', 'get_restaurant_slug_from_request']
