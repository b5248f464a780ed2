"""
Custom exceptions for loyalty business logic.

Every exception carries a machine-readable ``code`` and the offending values
as attributes so the API layer can render a user message without parsing
strings. Only PersistenceFailureError is safe to retry without new input.
"""


class LoyaltyError(Exception):
    """Base exception for all loyalty business logic errors."""

    retryable = False

    def __init__(self, message: str, code: str = "LOYALTY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    def to_details(self) -> dict:
        """Context values for error responses."""
        return {}


class NotFoundError(LoyaltyError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class CustomerNotFoundError(NotFoundError):
    """Customer not found."""

    def __init__(self, identifier=None):
        super().__init__("Customer", identifier)


class RewardNotFoundError(NotFoundError):
    """Reward not found."""

    def __init__(self, identifier=None):
        super().__init__("Reward", identifier)


class RestaurantNotFoundError(NotFoundError):
    """Restaurant not found."""

    def __init__(self, identifier=None):
        super().__init__("Restaurant", identifier)


class ValidationError(LoyaltyError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)

    def to_details(self) -> dict:
        return {'field': self.field} if self.field else {}


class DuplicateError(LoyaltyError):
    """Resource already exists."""

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} already exists"
        if identifier:
            message = f"{resource} with {identifier} already exists"
        super().__init__(message, "DUPLICATE_ENTRY")


class InvalidAmountError(LoyaltyError):
    """Malformed point delta or purchase amount."""

    def __init__(self, message: str, amount=None, transaction_type: str = None):
        self.amount = amount
        self.transaction_type = transaction_type
        super().__init__(message, "INVALID_AMOUNT")

    def to_details(self) -> dict:
        return {'amount': self.amount, 'transaction_type': self.transaction_type}


class IneligibleRedemptionError(LoyaltyError):
    """Reward is inactive, above the customer's tier, or too expensive."""

    def __init__(
        self,
        reasons: list,
        customer_id: int = None,
        reward_id: int = None,
        total_points: int = None,
        points_required: int = None,
        current_tier: str = None,
        min_tier: str = None,
    ):
        self.reasons = list(reasons)
        self.customer_id = customer_id
        self.reward_id = reward_id
        self.total_points = total_points
        self.points_required = points_required
        self.current_tier = current_tier
        self.min_tier = min_tier
        message = f"Reward {reward_id} cannot be redeemed: {', '.join(self.reasons)}"
        super().__init__(message, "INELIGIBLE_REDEMPTION")

    def to_details(self) -> dict:
        return {
            'reasons': self.reasons,
            'customer_id': self.customer_id,
            'reward_id': self.reward_id,
            'total_points': self.total_points,
            'points_required': self.points_required,
            'current_tier': self.current_tier,
            'min_tier': self.min_tier,
        }


class RewardExhaustedError(LoyaltyError):
    """Reward availability cap reached."""

    def __init__(self, reward_id: int, total_available: int, total_redeemed: int):
        self.reward_id = reward_id
        self.total_available = total_available
        self.total_redeemed = total_redeemed
        message = (
            f"Reward {reward_id} is no longer available "
            f"({total_redeemed}/{total_available} redeemed)"
        )
        super().__init__(message, "REWARD_EXHAUSTED")

    def to_details(self) -> dict:
        return {
            'reward_id': self.reward_id,
            'total_available': self.total_available,
            'total_redeemed': self.total_redeemed,
        }


class ConcurrentModificationError(LoyaltyError):
    """Customer balance changed between validation and commit."""

    def __init__(self, customer_id: int, expected_version: int = None):
        self.customer_id = customer_id
        self.expected_version = expected_version
        message = f"Customer {customer_id} was modified concurrently"
        super().__init__(message, "CONCURRENT_MODIFICATION")

    def to_details(self) -> dict:
        return {'customer_id': self.customer_id, 'expected_version': self.expected_version}


class PersistenceFailureError(LoyaltyError):
    """The store could not complete a commit. Nothing was written."""

    retryable = True

    def __init__(self, operation: str, original_error: Exception = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Could not complete {operation}", "PERSISTENCE_FAILURE")

    def to_details(self) -> dict:
        return {'operation': self.operation, 'retryable': True}
