"""
API Routes - FastAPI endpoints for purchase verification and entitlements.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    UserIdentity,
    get_current_user,
    get_orchestrator,
    get_read_ledger,
)
from app.db.session import get_read_db
from app.models.api import (
    EntitlementStatusResponse,
    ErrorKind,
    ErrorResponse,
    HealthResponse,
    PurchaseItem,
    PurchaseListResponse,
    PurchaseResponse,
    SubmitPurchaseRequest,
)
from app.models.domain import PurchaseClaim, PurchaseData, SubmissionResult
from app.services.ledger import EntitlementLedger
from app.services.orchestrator import PurchaseOrchestrator

router = APIRouter()

ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.PRODUCT_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorKind.VERIFICATION_ERROR: 422,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.LOG_WRITE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_purchase_item(purchase: PurchaseData) -> PurchaseItem:
    return PurchaseItem(
        purchase_id=purchase.purchase_id,
        transaction_id=purchase.transaction_id,
        catalog_item_id=purchase.catalog_item_id,
        product_id=purchase.product_id,
        price=purchase.price_minor,
        currency=purchase.currency,
        platform=purchase.platform,
        status=purchase.status,
        verified_at=purchase.verified_at,
    )


def _error_for(result: SubmissionResult) -> HTTPException:
    error_kind = result.error_kind or ErrorKind.VERIFICATION_ERROR
    headers = {"Retry-After": "5"} if error_kind.retryable else None
    return HTTPException(
        status_code=ERROR_STATUS_CODES[error_kind],
        detail=ErrorResponse(
            error_kind=error_kind,
            message=result.message or error_kind.value,
            retryable=error_kind.retryable,
        ).model_dump(mode="json"),
        headers=headers,
    )


@router.post(
    "/v1/purchases/verify",
    response_model=PurchaseResponse,
    status_code=status.HTTP_200_OK,
)
async def verify_purchase(
    request: SubmitPurchaseRequest,
    user: UserIdentity = Depends(get_current_user),
    orchestrator: PurchaseOrchestrator = Depends(get_orchestrator),
) -> PurchaseResponse:
    """
    Verify a purchase proof and record the entitlement.

    Auth: Bearer {session_jwt}

    Flow:
    1. Client completes purchase via the platform commerce SDK
    2. Client submits the transaction id and raw proof here
    3. Backend checks the ledger, resolves the catalog item, verifies the proof
    4. Backend records the purchase once per transaction id

    Idempotent: resubmitting a recorded transaction returns the same purchase
    with already_recorded=true.
    """
    claim = PurchaseClaim(
        transaction_id=request.transaction_id,
        product_id=request.product_id,
        raw_proof=request.raw_proof,
        platform=request.platform,
        catalog_item_id=request.catalog_item_id,
        claimed_price_minor=request.claimed_price,
        claimed_currency=request.claimed_currency,
    )

    result = await orchestrator.submit(user.user_id, claim)
    if not result.success or result.purchase is None:
        raise _error_for(result)

    return PurchaseResponse(
        success=True,
        already_recorded=result.already_recorded,
        purchase=to_purchase_item(result.purchase),
    )


@router.get("/v1/purchases", response_model=PurchaseListResponse)
async def list_my_purchases(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: UserIdentity = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_read_ledger),
) -> PurchaseListResponse:
    """The authenticated user's verified purchases, newest first."""
    purchases, total = await ledger.list_for_user(user.user_id, limit=limit, offset=offset)
    return PurchaseListResponse(
        purchases=[to_purchase_item(p) for p in purchases],
        total_count=total,
    )


@router.get(
    "/v1/purchases/entitlements/{catalog_item_id}",
    response_model=EntitlementStatusResponse,
)
async def get_entitlement(
    catalog_item_id: UUID,
    user: UserIdentity = Depends(get_current_user),
    ledger: EntitlementLedger = Depends(get_read_ledger),
) -> EntitlementStatusResponse:
    """Whether the authenticated user owns the catalog item."""
    purchase = await ledger.has_entitlement(user.user_id, catalog_item_id)
    return EntitlementStatusResponse(
        catalog_item_id=catalog_item_id,
        entitled=purchase is not None,
        purchase_id=purchase.purchase_id if purchase else None,
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
