"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from app.models.api import ErrorKind, LogStatus, Platform, PurchaseStatus


class SubmissionState(str, Enum):
    """Orchestrator state for a single claim."""

    RECEIVED = "received"
    DUPLICATE_CHECK = "duplicate_check"
    CATALOG_LOOKUP = "catalog_lookup"
    VERIFYING = "verifying"
    PRODUCT_MATCH_CHECK = "product_match_check"
    RECORDING = "recording"
    # Terminal states
    ALREADY_RECORDED = "already_recorded"
    NOT_FOUND = "not_found"
    VERIFICATION_FAILED = "verification_failed"
    MISMATCH = "mismatch"
    RECORDED = "recorded"
    UNAVAILABLE = "unavailable"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        SubmissionState.ALREADY_RECORDED,
        SubmissionState.NOT_FOUND,
        SubmissionState.VERIFICATION_FAILED,
        SubmissionState.MISMATCH,
        SubmissionState.RECORDED,
        SubmissionState.UNAVAILABLE,
        SubmissionState.REJECTED,
    }
)


@dataclass(frozen=True)
class CatalogItemData:
    """Read-only catalog entry."""

    catalog_item_id: UUID
    product_id: str
    title: str
    price_minor: int
    currency: str
    purchasable: bool

    def __post_init__(self) -> None:
        """Validate catalog constraints."""
        if not self.product_id:
            raise ValueError("product_id cannot be empty")
        if self.price_minor < 0:
            raise ValueError(f"Price cannot be negative: {self.price_minor}")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")


@dataclass(frozen=True)
class PurchaseClaim:
    """Client-held claim built from a commerce SDK purchase event."""

    transaction_id: str
    product_id: str
    raw_proof: str
    platform: Platform
    catalog_item_id: UUID | None = None
    claimed_price_minor: int | None = None
    claimed_currency: str | None = None

    def __post_init__(self) -> None:
        """Validate claim fields."""
        if not self.transaction_id:
            raise ValueError("transaction_id cannot be empty")
        if not self.product_id:
            raise ValueError("product_id cannot be empty")
        if not self.raw_proof:
            raise ValueError("raw_proof cannot be empty")


@dataclass(frozen=True)
class VerificationResult:
    """Platform-agnostic outcome of a successful proof check."""

    valid: bool
    canonical_transaction_id: str
    canonical_product_id: str
    environment: str
    purchased_at: datetime | None = None


@dataclass(frozen=True)
class PurchaseIntent:
    """Verified purchase before persistence - immutable intent."""

    user_id: str
    catalog_item_id: UUID
    product_id: str
    price_minor: int
    currency: str
    platform: Platform
    verified_at: datetime

    def __post_init__(self) -> None:
        """Validate purchase constraints."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if self.price_minor < 0:
            raise ValueError(f"Price cannot be negative: {self.price_minor}")
        if len(self.currency) != 3:
            raise ValueError(f"Invalid currency code: {self.currency}")


@dataclass(frozen=True)
class PurchaseData:
    """Persisted ledger row."""

    purchase_id: UUID
    transaction_id: str
    user_id: str
    catalog_item_id: UUID
    product_id: str
    price_minor: int
    currency: str
    platform: Platform
    status: PurchaseStatus
    verified_at: datetime


@dataclass(frozen=True)
class RecordOutcome:
    """Result of record_if_absent: created, or the row that already existed."""

    created: bool
    purchase: PurchaseData


@dataclass(frozen=True)
class TransactionLogData:
    """Append-only audit entry, one per terminal submission state."""

    transaction_id: str
    user_id: str
    product_id: str
    platform: Platform
    status: LogStatus
    catalog_item_id: UUID | None = None
    price_minor: int | None = None
    currency: str | None = None
    error_kind: ErrorKind | None = None
    raw_proof_digest: str | None = None


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of submitting one claim."""

    success: bool
    state: SubmissionState
    purchase: PurchaseData | None = None
    error_kind: ErrorKind | None = None
    message: str | None = None
    already_recorded: bool = False

    def __post_init__(self) -> None:
        """Success carries a purchase, failure carries an error kind."""
        if self.success and self.purchase is None:
            raise ValueError("Successful submission requires a purchase")
        if not self.success and self.error_kind is None:
            raise ValueError("Failed submission requires an error kind")

    @property
    def retryable(self) -> bool:
        return self.error_kind is not None and self.error_kind.retryable


@dataclass(frozen=True)
class RestoreSummary:
    """Counts from a restore pass."""

    restored_count: int
    failed_count: int

    @property
    def total(self) -> int:
        return self.restored_count + self.failed_count
