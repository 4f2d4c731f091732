"""
Purchase Orchestrator - Drives one claim from receipt to a terminal state.

NO DICTIONARIES - All data uses strongly typed models.

    RECEIVED -> DUPLICATE_CHECK -> ALREADY_RECORDED | CATALOG_LOOKUP
    CATALOG_LOOKUP -> NOT_FOUND | VERIFYING
    VERIFYING -> VERIFICATION_FAILED | MISMATCH | PRODUCT_MATCH_CHECK
    PRODUCT_MATCH_CHECK -> MISMATCH | RECORDING
    RECORDING -> RECORDED | ALREADY_RECORDED

Any state may end in UNAVAILABLE (retryable) when a dependency is down
or an unexpected error escapes a step.
Every terminal state writes exactly one transaction log entry.
"""

import hashlib
import time
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from app.exceptions import (
    ProductMismatchError,
    ProductNotFoundError,
    TransientVerificationError,
    VerificationError,
    WriteVerificationError,
)
from app.models.api import ErrorKind, LogStatus
from app.models.domain import (
    CatalogItemData,
    PurchaseClaim,
    PurchaseData,
    PurchaseIntent,
    SubmissionResult,
    SubmissionState,
    TransactionLogData,
)
from app.observability.logging import log_context
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.catalog import CatalogService
from app.services.ledger import EntitlementLedger
from app.services.receipt_verifier import ReceiptVerifier

logger = get_logger(__name__)


def proof_digest(raw_proof: str) -> str:
    """Audit reference for a proof; the proof itself is never stored."""
    return "sha256:" + hashlib.sha256(raw_proof.encode("utf-8")).hexdigest()


def _failure(state: SubmissionState, error_kind: ErrorKind, message: str) -> SubmissionResult:
    return SubmissionResult(success=False, state=state, error_kind=error_kind, message=message)


def _unavailable(exc: Exception) -> SubmissionResult:
    return _failure(SubmissionState.UNAVAILABLE, ErrorKind.TRANSIENT, str(exc))


class PurchaseOrchestrator:
    """Verifies a claim and records the entitlement exactly once."""

    def __init__(
        self,
        catalog: CatalogService,
        verifier: ReceiptVerifier,
        ledger: EntitlementLedger,
    ) -> None:
        self.catalog = catalog
        self.verifier = verifier
        self.ledger = ledger

    async def submit(self, user_id: str | None, claim: PurchaseClaim) -> SubmissionResult:
        """
        Submit a claim on behalf of an authenticated user.

        Never raises for an expected failure; the result carries the
        ErrorKind. An unauthenticated call is rejected before any catalog,
        verifier or ledger access and writes no log entry.
        """
        if not user_id:
            logger.warning("purchase_submission_unauthorized", transaction_id=claim.transaction_id)
            return _failure(
                SubmissionState.REJECTED, ErrorKind.UNAUTHORIZED, "Authentication required"
            )

        start = time.perf_counter()
        with log_context(user_id=user_id, transaction_id=claim.transaction_id):
            with trace_operation(
                "purchase_submission",
                platform=claim.platform.value,
                product_id=claim.product_id,
            ) as span:
                logger.info(
                    "purchase_submission_received",
                    product_id=claim.product_id,
                    platform=claim.platform.value,
                )

                try:
                    result, item = await self._process(user_id, claim)
                except Exception:
                    logger.exception("purchase_submission_unexpected_error")
                    result = _failure(
                        SubmissionState.UNAVAILABLE,
                        ErrorKind.TRANSIENT,
                        "Purchase could not be processed, please retry",
                    )
                    item = None

                span.set_attribute("submission.state", result.state.value)
                self._append_log(user_id, claim, result, item)
                metrics.record_submission(
                    claim.platform.value,
                    result.success,
                    result.error_kind.value if result.error_kind else None,
                    time.perf_counter() - start,
                )

                if result.success:
                    logger.info(
                        "purchase_submission_succeeded",
                        state=result.state.value,
                        already_recorded=result.already_recorded,
                    )
                else:
                    logger.warning(
                        "purchase_submission_failed",
                        state=result.state.value,
                        error_kind=result.error_kind.value if result.error_kind else None,
                        reason=result.message,
                    )
                return result

    async def _process(
        self, user_id: str, claim: PurchaseClaim
    ) -> tuple[SubmissionResult, CatalogItemData | None]:
        # DUPLICATE_CHECK: fast path only; the ledger insert is the guarantee
        try:
            existing = await self.ledger.find_by_transaction_id(claim.transaction_id)
        except SQLAlchemyError as exc:
            logger.exception("purchase_duplicate_check_failed")
            return _unavailable(exc), None

        if existing is not None:
            return self._existing_result(user_id, existing), None

        # CATALOG_LOOKUP
        try:
            item = await self.catalog.resolve(claim.product_id)
        except ProductNotFoundError as exc:
            return _failure(SubmissionState.NOT_FOUND, exc.error_kind, str(exc)), None
        except SQLAlchemyError as exc:
            logger.exception("purchase_catalog_lookup_failed")
            return _unavailable(exc), None

        if claim.catalog_item_id is not None and claim.catalog_item_id != item.catalog_item_id:
            return (
                _failure(
                    SubmissionState.MISMATCH,
                    ErrorKind.PRODUCT_MISMATCH,
                    "Catalog item does not match product",
                ),
                item,
            )

        if claim.claimed_price_minor is not None and claim.claimed_price_minor != item.price_minor:
            logger.info(
                "purchase_claimed_price_differs",
                claimed_price=claim.claimed_price_minor,
                catalog_price=item.price_minor,
            )

        # VERIFYING
        try:
            verification = await self.verifier.verify(
                claim.platform,
                claim.raw_proof,
                claim.product_id,
                claim.transaction_id,
            )
        except ProductMismatchError as exc:
            return _failure(SubmissionState.MISMATCH, exc.error_kind, str(exc)), item
        except TransientVerificationError as exc:
            return _unavailable(exc), item
        except VerificationError as exc:
            return _failure(SubmissionState.VERIFICATION_FAILED, exc.error_kind, str(exc)), item

        # PRODUCT_MATCH_CHECK
        if verification.canonical_product_id != item.product_id:
            mismatch = ProductMismatchError(
                expected=item.product_id, actual=verification.canonical_product_id
            )
            return _failure(SubmissionState.MISMATCH, mismatch.error_kind, str(mismatch)), item

        # RECORDING: price and currency always come from the catalog
        intent = PurchaseIntent(
            user_id=user_id,
            catalog_item_id=item.catalog_item_id,
            product_id=item.product_id,
            price_minor=item.price_minor,
            currency=item.currency,
            platform=claim.platform,
            verified_at=datetime.now(UTC),
        )
        try:
            outcome = await self.ledger.record_if_absent(
                verification.canonical_transaction_id, intent
            )
        except (SQLAlchemyError, WriteVerificationError) as exc:
            logger.exception("purchase_recording_failed")
            return _unavailable(exc), item

        if not outcome.created:
            return self._existing_result(user_id, outcome.purchase), item

        logger.info("purchase_recorded", purchase_id=str(outcome.purchase.purchase_id))
        return (
            SubmissionResult(
                success=True,
                state=SubmissionState.RECORDED,
                purchase=outcome.purchase,
            ),
            item,
        )

    def _existing_result(self, user_id: str, existing: PurchaseData) -> SubmissionResult:
        if existing.user_id != user_id:
            logger.warning(
                "purchase_transaction_owned_by_other_user",
                purchase_id=str(existing.purchase_id),
            )
            return _failure(
                SubmissionState.REJECTED,
                ErrorKind.VERIFICATION_ERROR,
                "Transaction already recorded for another account",
            )
        return SubmissionResult(
            success=True,
            state=SubmissionState.ALREADY_RECORDED,
            purchase=existing,
            already_recorded=True,
        )

    def _append_log(
        self,
        user_id: str,
        claim: PurchaseClaim,
        result: SubmissionResult,
        item: CatalogItemData | None,
    ) -> None:
        purchase = result.purchase
        if purchase is not None:
            entry = TransactionLogData(
                transaction_id=purchase.transaction_id,
                user_id=user_id,
                product_id=purchase.product_id,
                platform=claim.platform,
                status=LogStatus.SUCCESS,
                catalog_item_id=purchase.catalog_item_id,
                price_minor=purchase.price_minor,
                currency=purchase.currency,
                error_kind=ErrorKind.ALREADY_RECORDED if result.already_recorded else None,
                raw_proof_digest=proof_digest(claim.raw_proof),
            )
        else:
            entry = TransactionLogData(
                transaction_id=claim.transaction_id,
                user_id=user_id,
                product_id=claim.product_id,
                platform=claim.platform,
                status=LogStatus.FAILURE,
                catalog_item_id=item.catalog_item_id if item else None,
                price_minor=item.price_minor if item else claim.claimed_price_minor,
                currency=item.currency if item else claim.claimed_currency,
                error_kind=result.error_kind,
                raw_proof_digest=proof_digest(claim.raw_proof),
            )
        self.ledger.append_log(entry)

