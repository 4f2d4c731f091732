"""
Google Play Verifier - Server-to-server purchase status query.

NO DICTIONARIES - All data uses strongly typed models.
"""

import asyncio
import base64
import json
from pathlib import Path
from typing import Any

from google.auth import exceptions as google_auth_exceptions
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from structlog import get_logger

from app.exceptions import ProductMismatchError, TransientVerificationError, VerificationError
from app.models.api import Platform
from app.models.domain import VerificationResult
from app.models.google_play import GooglePlayPurchaseToken, GooglePlayPurchaseVerification

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"

# 4xx statuses that still mean "Google is unavailable, retry"
TRANSIENT_STATUSES = frozenset({408, 429})


def load_service_account_info(value: str) -> str | dict[str, Any]:
    """
    Interpret a configured service account as a file path, raw JSON, or
    base64-encoded JSON.

    Returns a path string or the parsed key dict.
    """
    stripped = value.strip()
    if stripped.startswith("{"):
        info: dict[str, Any] = json.loads(stripped)
        return info
    if Path(stripped).is_file():
        return stripped
    try:
        decoded: dict[str, Any] = json.loads(base64.b64decode(stripped, validate=True))
    except ValueError as exc:
        raise ValueError(
            "Service account must be a file path, JSON, or base64-encoded JSON"
        ) from exc
    return decoded


def build_android_publisher(service_account_json: str | dict[str, Any]) -> Any:
    """Build an androidpublisher v3 client from service account credentials."""
    if isinstance(service_account_json, str):
        credentials = service_account.Credentials.from_service_account_file(  # type: ignore[no-untyped-call]
            service_account_json,
            scopes=[ANDROID_PUBLISHER_SCOPE],
        )
    else:
        credentials = service_account.Credentials.from_service_account_info(  # type: ignore[no-untyped-call]
            service_account_json,
            scopes=[ANDROID_PUBLISHER_SCOPE],
        )
    return build("androidpublisher", "v3", credentials=credentials, cache_discovery=False)


class GooglePlayVerifier:
    """
    Platform B verifier.

    Queries purchases.products.get and accepts only purchaseState 0
    (purchased). The blocking client call runs in a worker thread and is
    bounded by timeout_seconds.
    """

    platform = Platform.GOOGLE_PLAY

    def __init__(self, service: Any, package_name: str, timeout_seconds: float = 10.0) -> None:
        """
        Args:
            service: androidpublisher v3 client (see build_android_publisher)
            package_name: Android package name the purchases belong to
            timeout_seconds: Upper bound on a single status query
        """
        if not package_name:
            raise ValueError("Package name required")
        self.service = service
        self.package_name = package_name
        self.timeout_seconds = timeout_seconds

        logger.info("google_play_verifier_initialized", package_name=package_name)

    @classmethod
    def from_service_account(
        cls, service_account_value: str, package_name: str, timeout_seconds: float = 10.0
    ) -> "GooglePlayVerifier":
        service = build_android_publisher(load_service_account_info(service_account_value))
        return cls(service=service, package_name=package_name, timeout_seconds=timeout_seconds)

    async def verify(
        self,
        raw_proof: str,
        claimed_product_id: str,
        claimed_transaction_id: str,
    ) -> VerificationResult:
        """
        Verify a purchase token against the claim.

        Raises:
            VerificationError: Token unknown/expired or purchase not in purchased state
            ProductMismatchError: Google reports a different product id
            TransientVerificationError: Timeout, rate limit, 5xx or transport failure
        """
        try:
            purchase_token = GooglePlayPurchaseToken(
                token=raw_proof,
                product_id=claimed_product_id,
                package_name=self.package_name,
            )
        except ValueError as exc:
            raise VerificationError(str(exc)) from exc

        response = await self._query(purchase_token)
        try:
            verification = GooglePlayPurchaseVerification.from_response(response, purchase_token)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("google_play_malformed_purchase", error=str(exc))
            raise VerificationError(f"Malformed purchase response: {exc}") from exc

        if not verification.is_valid():
            logger.warning(
                "google_play_purchase_not_purchased",
                order_id=verification.order_id,
                purchase_state=verification.purchase_state,
            )
            raise VerificationError(f"Purchase is {verification.purchase_state_name}")

        if verification.product_id != claimed_product_id:
            raise ProductMismatchError(expected=claimed_product_id, actual=verification.product_id)

        # Test purchases from license testers carry no orderId
        canonical_transaction_id = verification.order_id or claimed_transaction_id
        if canonical_transaction_id != claimed_transaction_id:
            raise VerificationError("Transaction ID does not match order ID")

        logger.info(
            "google_play_purchase_verified",
            order_id=verification.order_id,
            product_id=verification.product_id,
            is_test=verification.is_test_purchase(),
        )

        return VerificationResult(
            valid=True,
            canonical_transaction_id=canonical_transaction_id,
            canonical_product_id=verification.product_id,
            environment="Sandbox" if verification.is_test_purchase() else "Production",
            purchased_at=verification.purchased_at,
        )

    async def _query(self, purchase_token: GooglePlayPurchaseToken) -> dict[str, Any]:
        request = (
            self.service.purchases()
            .products()
            .get(
                packageName=purchase_token.package_name,
                productId=purchase_token.product_id,
                token=purchase_token.token,
            )
        )
        try:
            response: dict[str, Any] = await asyncio.wait_for(
                asyncio.to_thread(request.execute), timeout=self.timeout_seconds
            )
            return response

        except TimeoutError as exc:
            logger.warning("google_play_verification_timeout", timeout=self.timeout_seconds)
            raise TransientVerificationError("Google Play did not respond in time") from exc

        except HttpError as exc:
            status = exc.resp.status
            error_content = exc.content.decode("utf-8") if exc.content else str(exc)
            logger.error("google_play_verification_failed", status=status, error=error_content)

            if status in TRANSIENT_STATUSES or status >= 500:
                raise TransientVerificationError(f"Google Play API error {status}") from exc
            if status == 404:
                raise VerificationError("Purchase not found or invalid token") from exc
            if status == 410:
                raise VerificationError("Purchase token expired") from exc
            raise VerificationError(f"Google Play rejected the purchase ({status})") from exc

        except (
            google_auth_exceptions.TransportError,
            google_auth_exceptions.RefreshError,
            OSError,
        ) as exc:
            logger.exception("google_play_transport_error")
            raise TransientVerificationError(f"Google Play unreachable: {exc}") from exc

    async def close(self) -> None:
        """Release the discovery client's HTTP connections."""
        self.service.close()
