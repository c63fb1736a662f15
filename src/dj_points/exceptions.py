"""
Exceptions raised by dj_points services.

Every exception carries a stable ``code`` so the API layer can map it to a
response without inspecting message text.
"""


class PointsException(Exception):
    """Base class for all dj_points errors."""

    code = "points_error"


class NotFound(PointsException):
    """Referenced user, account, product or order does not exist."""

    code = "not_found"


class InvalidRequest(PointsException):
    """Malformed input: bad amount, self-transfer, empty cart, bad state."""

    code = "invalid_request"


class AmountInvalid(InvalidRequest):
    code = "amount_invalid"


class TransactionImmutable(InvalidRequest):
    code = "transaction_immutable"


class InsufficientFunds(PointsException):
    code = "insufficient_funds"


class QuotaExceeded(PointsException):
    """Monthly transfer limit would be exceeded."""

    code = "quota_exceeded"

    def __init__(self, message, remaining=0):
        super().__init__(message)
        self.remaining = remaining


class OutOfStock(PointsException):
    code = "out_of_stock"

    def __init__(self, message, product_id=None, available=None):
        super().__init__(message)
        self.product_id = product_id
        self.available = available


class ConflictRetryable(PointsException):
    """Lock or serialization conflict; the whole operation may be retried."""

    code = "conflict_retryable"


class StorageFailure(PointsException):
    """Database error; the operation was not applied."""

    code = "storage_failure"
