"""
Standardized error response utilities for the loyalty API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE",
        "details": {...}            # optional context values
    }
}

Usage:
    from loyalty.utils.errors import error_response, ErrorCode

    return error_response("Customer not found", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

from .exceptions import (
    LoyaltyError,
    NotFoundError,
    ValidationError,
    DuplicateError,
    InvalidAmountError,
    IneligibleRedemptionError,
    RewardExhaustedError,
    ConcurrentModificationError,
    PersistenceFailureError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESTAURANT_REQUIRED = "RESTAURANT_REQUIRED"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    REWARD_NOT_FOUND = "REWARD_NOT_FOUND"
    RESTAURANT_NOT_FOUND = "RESTAURANT_NOT_FOUND"

    # Conflict (409)
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Business Logic Errors (403, 422)
    RESTAURANT_INACTIVE = "RESTAURANT_INACTIVE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INELIGIBLE_REDEMPTION = "INELIGIBLE_REDEMPTION"
    REWARD_EXHAUSTED = "REWARD_EXHAUSTED"

    # Store Errors (503)
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum (or a raw code string)
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Optional context returned alongside the message

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    body = {
        "message": message,
        "code": code.value if isinstance(code, ErrorCode) else code
    }
    if details:
        body["details"] = details

    return jsonify({"error": body}), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False)


def forbidden(message: str, code: ErrorCode = ErrorCode.RESTAURANT_INACTIVE) -> tuple:
    """403 Forbidden error."""
    return error_response(message, code, 403, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)


# Most specific classes first
_STATUS_BY_EXCEPTION = (
    (NotFoundError, 404),
    (DuplicateError, 409),
    (ConcurrentModificationError, 409),
    (ValidationError, 400),
    (InvalidAmountError, 400),
    (IneligibleRedemptionError, 422),
    (RewardExhaustedError, 422),
    (PersistenceFailureError, 503),
)


def status_for(error: LoyaltyError) -> int:
    """HTTP status code for a domain exception."""
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(error, exc_type):
            return status_code
    return 400


def loyalty_error_response(error: LoyaltyError) -> tuple:
    """Render a domain exception with the standard envelope."""
    status_code = status_for(error)
    return error_response(
        error.message,
        error.code,
        status_code,
        log_error=status_code >= 500,
        details=error.to_details() or None
    )
