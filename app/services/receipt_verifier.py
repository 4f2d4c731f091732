"""
Receipt Verifier - Dispatches a purchase proof to its platform verifier.

NO DICTIONARIES - All data uses strongly typed models.
"""

import time
from collections.abc import Mapping
from typing import Protocol

from structlog import get_logger

from app.config import Settings
from app.exceptions import VerificationError
from app.models.api import Platform
from app.models.domain import VerificationResult
from app.observability.metrics import metrics
from app.services.app_store_verifier import AppStoreVerifier
from app.services.google_play_verifier import GooglePlayVerifier

logger = get_logger(__name__)


class PlatformVerifier(Protocol):
    """A stateless, retry-safe proof check for one platform."""

    platform: Platform

    async def verify(
        self,
        raw_proof: str,
        claimed_product_id: str,
        claimed_transaction_id: str,
    ) -> VerificationResult: ...

    async def close(self) -> None: ...


class ReceiptVerifier:
    """Routes each proof to the verifier registered for its platform."""

    def __init__(self, verifiers: Mapping[Platform, PlatformVerifier]) -> None:
        self._verifiers = dict(verifiers)

    @property
    def platforms(self) -> frozenset[Platform]:
        return frozenset(self._verifiers)

    async def verify(
        self,
        platform: Platform,
        raw_proof: str,
        claimed_product_id: str,
        claimed_transaction_id: str,
    ) -> VerificationResult:
        """
        Verify a proof with the platform's verifier.

        Raises:
            VerificationError: Platform not configured, or proof rejected
            ProductMismatchError: Proof is for a different product
            TransientVerificationError: Platform unavailable; safe to retry
        """
        verifier = self._verifiers.get(platform)
        if verifier is None:
            logger.error("receipt_verifier_platform_not_configured", platform=platform.value)
            raise VerificationError(f"{platform.value} verification is not configured")

        start = time.perf_counter()
        try:
            return await verifier.verify(raw_proof, claimed_product_id, claimed_transaction_id)
        finally:
            metrics.record_verification(platform.value, time.perf_counter() - start)

    async def close(self) -> None:
        for verifier in self._verifiers.values():
            await verifier.close()


def build_receipt_verifier(settings: Settings) -> ReceiptVerifier:
    """Build verifiers for every platform that has configuration."""
    verifiers: dict[Platform, PlatformVerifier] = {}

    if settings.app_store_configured:
        verifiers[Platform.APP_STORE] = AppStoreVerifier.from_certificate_files(
            bundle_id=settings.app_store_bundle_id,
            paths=settings.app_store_root_certificate_paths,
            accept_sandbox=settings.app_store_accept_sandbox,
        )
    else:
        logger.warning("app_store_verification_disabled", reason="not_configured")

    if settings.google_play_configured:
        verifiers[Platform.GOOGLE_PLAY] = GooglePlayVerifier.from_service_account(
            settings.google_play_service_account,
            package_name=settings.google_play_package_name,
            timeout_seconds=settings.verifier_timeout_seconds,
        )
    else:
        logger.warning("google_play_verification_disabled", reason="not_configured")

    return ReceiptVerifier(verifiers)
