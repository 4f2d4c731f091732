"""
Client Purchase Controller - Drives purchases from the purchase UI to finalize.

NO DICTIONARIES - All data uses strongly typed models.

For each PurchaseUpdated event: acquire guard -> submit -> finalize ->
release. Finalize happens exactly once per handled event, on success and
on every terminal failure. A retryable failure is not finalized; the
platform keeps the purchase and the claim stays pending for retry.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from structlog import get_logger

from app.client.commerce import CommerceConnection, CommerceEvent, PurchaseFailed, PurchaseUpdated
from app.client.guard import GuardDecision, IdempotencyGuard
from app.exceptions import CommerceError
from app.models.api import ErrorKind
from app.models.domain import PurchaseClaim, PurchaseData, SubmissionResult

logger = get_logger(__name__)


class OutcomeKind(str, Enum):
    PENDING = "pending"  # purchase UI opened; result arrives as an event
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRYABLE = "retryable"
    BUSY = "busy"
    CANCELLED = "cancelled"


USER_MESSAGES: dict[OutcomeKind, str] = {
    OutcomeKind.PENDING: "",
    OutcomeKind.SUCCEEDED: "Purchase complete",
    OutcomeKind.FAILED: "Purchase failed",
    OutcomeKind.RETRYABLE: "Please try again",
    OutcomeKind.BUSY: "A purchase is already in progress",
    OutcomeKind.CANCELLED: "",
}


@dataclass(frozen=True)
class PurchaseOutcome:
    """What the UI shows for one purchase attempt."""

    kind: OutcomeKind
    product_id: str | None = None
    transaction_id: str | None = None
    purchase: PurchaseData | None = None
    error_kind: ErrorKind | None = None

    @property
    def message(self) -> str:
        return USER_MESSAGES[self.kind]


class PurchaseSubmitter(Protocol):
    async def submit(self, claim: PurchaseClaim) -> SubmissionResult: ...


OutcomeListener = Callable[[PurchaseOutcome], None]


class PurchaseController:
    """Owns the guard and the event loop side of the purchase flow."""

    def __init__(
        self,
        connection: CommerceConnection,
        submitter: PurchaseSubmitter,
        guard: IdempotencyGuard | None = None,
        on_outcome: OutcomeListener | None = None,
    ) -> None:
        self._connection = connection
        self._submitter = submitter
        self._guard = guard or IdempotencyGuard()
        self._on_outcome = on_outcome
        self._tasks: set[asyncio.Task[PurchaseOutcome]] = set()
        self._pending: dict[str, PurchaseClaim] = {}

    @property
    def guard(self) -> IdempotencyGuard:
        return self._guard

    @property
    def pending_claims(self) -> list[PurchaseClaim]:
        """Claims whose submission failed transiently and were not finalized."""
        return list(self._pending.values())

    async def initiate_purchase(self, product_id: str) -> PurchaseOutcome:
        """Open the platform purchase UI for a product."""
        if self._guard.busy:
            return self._emit(PurchaseOutcome(kind=OutcomeKind.BUSY, product_id=product_id))

        try:
            await self._connection.request_purchase(product_id)
        except CommerceError as exc:
            if exc.is_user_cancelled:
                logger.info("purchase_cancelled_by_user", product_id=product_id)
                return self._emit(
                    PurchaseOutcome(kind=OutcomeKind.CANCELLED, product_id=product_id)
                )
            logger.warning("purchase_request_failed", product_id=product_id, code=exc.code)
            return self._emit(PurchaseOutcome(kind=OutcomeKind.FAILED, product_id=product_id))

        return PurchaseOutcome(kind=OutcomeKind.PENDING, product_id=product_id)

    async def run(self) -> None:
        """
        Consume the commerce event channel until it closes.

        Each event is handled in its own task so a second delivery can
        interleave with an in-flight submission.
        """
        async for event in self._connection.events():
            task = asyncio.create_task(self.handle_event(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def handle_event(self, event: CommerceEvent) -> PurchaseOutcome:
        if isinstance(event, PurchaseUpdated):
            return await self.handle_purchase_update(event.claim)
        return self._handle_failure(event)

    async def handle_purchase_update(self, claim: PurchaseClaim) -> PurchaseOutcome:
        """Submit a purchase reported by the SDK and finalize it."""
        decision = self._guard.try_acquire(claim.transaction_id)

        if decision is GuardDecision.BUSY:
            # Not finalized: the platform redelivers unfinished purchases
            logger.info(
                "purchase_update_dropped_busy",
                transaction_id=claim.transaction_id,
                in_flight=self._guard.in_flight,
            )
            return self._emit(self._outcome(OutcomeKind.BUSY, claim))

        if decision is GuardDecision.ALREADY_SUBMITTED:
            logger.info("purchase_update_already_submitted", transaction_id=claim.transaction_id)
            await self._finalize(claim)
            return self._emit(self._outcome(OutcomeKind.SUCCEEDED, claim))

        succeeded = False
        try:
            result = await self._submitter.submit(claim)

            if result.success:
                succeeded = True
                self._pending.pop(claim.transaction_id, None)
                await self._finalize(claim)
                outcome = self._outcome(OutcomeKind.SUCCEEDED, claim, purchase=result.purchase)
            elif result.retryable:
                self._pending[claim.transaction_id] = claim
                outcome = self._outcome(OutcomeKind.RETRYABLE, claim, error_kind=result.error_kind)
            else:
                self._pending.pop(claim.transaction_id, None)
                await self._finalize(claim)
                outcome = self._outcome(OutcomeKind.FAILED, claim, error_kind=result.error_kind)
        finally:
            self._guard.release(claim.transaction_id, succeeded=succeeded)

        logger.info(
            "purchase_update_handled",
            transaction_id=claim.transaction_id,
            outcome=outcome.kind.value,
            error_kind=outcome.error_kind.value if outcome.error_kind else None,
        )
        return self._emit(outcome)

    async def retry_pending(self) -> list[PurchaseOutcome]:
        """Resubmit claims that previously failed transiently."""
        return [await self.handle_purchase_update(claim) for claim in self.pending_claims]

    def _handle_failure(self, event: PurchaseFailed) -> PurchaseOutcome:
        if event.is_user_cancelled:
            return self._emit(
                PurchaseOutcome(kind=OutcomeKind.CANCELLED, product_id=event.product_id)
            )
        logger.warning("purchase_failed_event", code=event.code, product_id=event.product_id)
        return self._emit(PurchaseOutcome(kind=OutcomeKind.FAILED, product_id=event.product_id))

    async def _finalize(self, claim: PurchaseClaim) -> None:
        try:
            await self._connection.finalize(claim)
        except CommerceError as exc:
            # The platform redelivers; the server answers already_recorded
            logger.warning(
                "purchase_finalize_failed",
                transaction_id=claim.transaction_id,
                code=exc.code,
            )

    @staticmethod
    def _outcome(
        kind: OutcomeKind,
        claim: PurchaseClaim,
        purchase: PurchaseData | None = None,
        error_kind: ErrorKind | None = None,
    ) -> PurchaseOutcome:
        return PurchaseOutcome(
            kind=kind,
            product_id=claim.product_id,
            transaction_id=claim.transaction_id,
            purchase=purchase,
            error_kind=error_kind,
        )

    def _emit(self, outcome: PurchaseOutcome) -> PurchaseOutcome:
        if self._on_outcome is not None:
            self._on_outcome(outcome)
        return outcome
