"""
Utility modules for the loyalty service.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    forbidden,
    not_found,
    internal_error,
    loyalty_error_response,
)
from .exceptions import (
    LoyaltyError,
    NotFoundError,
    CustomerNotFoundError,
    RewardNotFoundError,
    RestaurantNotFoundError,
    ValidationError,
    DuplicateError,
    InvalidAmountError,
    IneligibleRedemptionError,
    RewardExhaustedError,
    ConcurrentModificationError,
    PersistenceFailureError,
)
