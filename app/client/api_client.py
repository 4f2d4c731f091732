"""
Purchase API Client - Submits claims to the verification service over HTTP.

NO DICTIONARIES - All data uses strongly typed models.

Network and timeout failures never raise; they come back as a retryable
SubmissionResult so the controller treats every outcome uniformly.
"""

from collections.abc import Awaitable, Callable
from types import TracebackType

import httpx
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from structlog import get_logger

from app.models.api import ErrorKind, ErrorResponse, PurchaseResponse, SubmitPurchaseRequest
from app.models.domain import PurchaseClaim, PurchaseData, SubmissionResult, SubmissionState

logger = get_logger(__name__)

VERIFY_PATH = "/v1/purchases/verify"

# Server-side terminal state implied by each error kind
_ERROR_STATES: dict[ErrorKind, SubmissionState] = {
    ErrorKind.UNAUTHORIZED: SubmissionState.REJECTED,
    ErrorKind.NOT_FOUND: SubmissionState.NOT_FOUND,
    ErrorKind.PRODUCT_MISMATCH: SubmissionState.MISMATCH,
    ErrorKind.VERIFICATION_ERROR: SubmissionState.VERIFICATION_FAILED,
    ErrorKind.TRANSIENT: SubmissionState.UNAVAILABLE,
}


class ClientSettings(BaseSettings):
    """Client configuration, read from PURCHASE_API_* environment variables."""

    base_url: str = "http://localhost:8000"
    timeout_seconds: float = 15.0

    model_config = SettingsConfigDict(env_prefix="PURCHASE_API_", case_sensitive=False)


TokenProvider = Callable[[], Awaitable[str | None]]


def _failure(error_kind: ErrorKind, message: str) -> SubmissionResult:
    return SubmissionResult(
        success=False,
        state=_ERROR_STATES.get(error_kind, SubmissionState.VERIFICATION_FAILED),
        error_kind=error_kind,
        message=message,
    )


class PurchaseApiClient:
    """
    httpx-based submitter.

    Usage:
        async with PurchaseApiClient(settings.base_url, token_provider) as api:
            result = await api.submit(claim)
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: ClientSettings, token_provider: TokenProvider
    ) -> "PurchaseApiClient":
        return cls(settings.base_url, token_provider, timeout_seconds=settings.timeout_seconds)

    async def __aenter__(self) -> "PurchaseApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit(self, claim: PurchaseClaim) -> SubmissionResult:
        """Submit a claim. Never raises for network or server errors."""
        token = await self._token_provider()
        if not token:
            return _failure(ErrorKind.UNAUTHORIZED, "Sign in required")

        body = SubmitPurchaseRequest(
            catalog_item_id=claim.catalog_item_id,
            product_id=claim.product_id,
            transaction_id=claim.transaction_id,
            raw_proof=claim.raw_proof,
            platform=claim.platform,
            claimed_price=claim.claimed_price_minor,
            claimed_currency=claim.claimed_currency,
        )

        try:
            response = await self._client.post(
                VERIFY_PATH,
                json=body.model_dump(mode="json"),
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            logger.warning("purchase_submit_timeout", transaction_id=claim.transaction_id)
            return _failure(ErrorKind.TRANSIENT, f"Request timed out: {exc}")
        except httpx.TransportError as exc:
            logger.warning(
                "purchase_submit_network_error",
                transaction_id=claim.transaction_id,
                error=str(exc),
            )
            return _failure(ErrorKind.TRANSIENT, f"Network error: {exc}")

        if response.is_success:
            return self._parse_success(response)
        return self._parse_error(response)

    def _parse_success(self, response: httpx.Response) -> SubmissionResult:
        try:
            payload = PurchaseResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("purchase_submit_malformed_response", status=response.status_code)
            return _failure(ErrorKind.TRANSIENT, f"Malformed response: {exc}")

        item = payload.purchase
        purchase = PurchaseData(
            purchase_id=item.purchase_id,
            transaction_id=item.transaction_id,
            user_id="",  # not exposed to clients
            catalog_item_id=item.catalog_item_id,
            product_id=item.product_id,
            price_minor=item.price,
            currency=item.currency,
            platform=item.platform,
            status=item.status,
            verified_at=item.verified_at,
        )
        return SubmissionResult(
            success=True,
            state=(
                SubmissionState.ALREADY_RECORDED
                if payload.already_recorded
                else SubmissionState.RECORDED
            ),
            purchase=purchase,
            already_recorded=payload.already_recorded,
        )

    def _parse_error(self, response: httpx.Response) -> SubmissionResult:
        try:
            error = ErrorResponse.model_validate(response.json()["detail"])
            return _failure(error.error_kind, error.message)
        except (ValueError, KeyError, TypeError, ValidationError):
            pass

        # Unstructured error body: classify by status alone
        if response.status_code >= 500 or response.status_code in (408, 429):
            return _failure(ErrorKind.TRANSIENT, f"Server error {response.status_code}")
        if response.status_code == 401:
            return _failure(ErrorKind.UNAUTHORIZED, "Unauthorized")
        return _failure(ErrorKind.VERIFICATION_ERROR, f"Request rejected ({response.status_code})")
