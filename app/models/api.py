"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    """Commerce platform that issued a purchase proof."""

    APP_STORE = "app_store"  # Platform A: signed self-contained payload
    GOOGLE_PLAY = "google_play"  # Platform B: server-to-server status query


class ErrorKind(str, Enum):
    """Classified submission failure."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    PRODUCT_MISMATCH = "product_mismatch"
    VERIFICATION_ERROR = "verification_error"
    ALREADY_RECORDED = "already_recorded"
    TRANSIENT = "transient"
    LOG_WRITE_FAILED = "log_write_failed"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.TRANSIENT


class PurchaseStatus(str, Enum):
    """Status of a ledger row. Rows are only ever written as verified."""

    VERIFIED = "verified"


class LogStatus(str, Enum):
    """Outcome recorded in the transaction log."""

    SUCCESS = "success"
    FAILURE = "failure"


# ============================================================================
# Purchase Submission Models
# ============================================================================


class SubmitPurchaseRequest(BaseModel):
    """POST /v1/purchases/verify request body."""

    catalog_item_id: UUID | None = None
    product_id: str = Field(..., min_length=1, max_length=255)
    transaction_id: str = Field(..., min_length=1, max_length=255)
    raw_proof: str = Field(..., min_length=1, max_length=65536)
    platform: Platform
    claimed_price: int | None = Field(None, ge=0)
    claimed_currency: str | None = Field(None, min_length=3, max_length=3)

    @field_validator("claimed_currency")
    @classmethod
    def validate_currency(cls, v: str | None) -> str | None:
        """Currency codes are stored upper-case."""
        return v.upper() if v else v


class PurchaseItem(BaseModel):
    """A verified purchase as exposed over the API."""

    purchase_id: UUID
    transaction_id: str
    catalog_item_id: UUID
    product_id: str
    price: int
    currency: str
    platform: Platform
    status: PurchaseStatus
    verified_at: datetime


class PurchaseResponse(BaseModel):
    """Successful submission. already_recorded marks an idempotent replay."""

    success: bool = True
    already_recorded: bool = False
    purchase: PurchaseItem


class ErrorResponse(BaseModel):
    """Error body returned under the HTTPException detail key."""

    error_kind: ErrorKind
    message: str
    retryable: bool


class PurchaseListResponse(BaseModel):
    """GET /v1/purchases response body."""

    purchases: list[PurchaseItem]
    total_count: int


class EntitlementStatusResponse(BaseModel):
    """GET /v1/purchases/entitlements/{catalog_item_id} response body."""

    catalog_item_id: UUID
    entitled: bool
    purchase_id: UUID | None = None


# ============================================================================
# Health Check
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
