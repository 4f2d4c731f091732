"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from app.models.api import ErrorKind


class EntitlementError(Exception):
    """Base exception for all purchase and entitlement errors."""

    error_kind: ErrorKind = ErrorKind.VERIFICATION_ERROR


class UnauthorizedError(EntitlementError):
    """Raised when an operation requires an authenticated user and none is present."""

    error_kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required") -> None:
        self.message = message
        super().__init__(f"Unauthorized: {message}")


class ProductNotFoundError(EntitlementError):
    """Raised when no purchasable catalog item carries the product id."""

    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductMismatchError(EntitlementError):
    """Raised when the verified product differs from the claimed or catalog product."""

    error_kind = ErrorKind.PRODUCT_MISMATCH

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Product ID mismatch: expected {expected}, got {actual}")


class VerificationError(EntitlementError):
    """Raised when a purchase proof is rejected by the platform check."""

    error_kind = ErrorKind.VERIFICATION_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Verification failed: {message}")


class TransientVerificationError(EntitlementError):
    """Raised when verification could not complete (timeout, outage). Safe to retry."""

    error_kind = ErrorKind.TRANSIENT

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Verification unavailable: {message}")


class WriteVerificationError(EntitlementError):
    """Raised when database write verification fails."""

    error_kind = ErrorKind.TRANSIENT

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class LogWriteFailedError(EntitlementError):
    """Raised inside the background log writer; never reaches a caller."""

    error_kind = ErrorKind.LOG_WRITE_FAILED

    def __init__(self, transaction_id: str, message: str) -> None:
        self.transaction_id = transaction_id
        self.message = message
        super().__init__(f"Transaction log write failed for {transaction_id}: {message}")


class CommerceError(EntitlementError):
    """Raised by a commerce SDK connection (purchase UI, finalize, enumeration)."""

    USER_CANCELLED = "E_USER_CANCELLED"

    def __init__(self, code: str, message: str = "") -> None:
        self.code = code
        self.message = message
        detail = f"Commerce error {code}"
        super().__init__(f"{detail}: {message}" if message else detail)

    @property
    def is_user_cancelled(self) -> bool:
        return self.code == self.USER_CANCELLED
