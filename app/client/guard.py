"""
Idempotency Guard - Client-side protection against double submission.

In-memory only; state is lost on restart and the server ledger remains
the source of truth.
"""

from enum import Enum


class GuardDecision(str, Enum):
    ACQUIRED = "acquired"
    BUSY = "busy"  # another submission is in flight
    ALREADY_SUBMITTED = "already_submitted"  # this transaction already succeeded


class IdempotencyGuard:
    """
    One submission in flight at a time, and each transaction submitted once.

    A transaction id is remembered from acquire; it is kept after success and
    evicted after any failure so the purchase can be retried.
    """

    def __init__(self) -> None:
        self._in_flight: str | None = None
        self._submitted: set[str] = set()

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def in_flight(self) -> str | None:
        return self._in_flight

    def was_submitted(self, transaction_id: str) -> bool:
        return transaction_id in self._submitted

    def try_acquire(self, transaction_id: str) -> GuardDecision:
        if self._in_flight is not None:
            return GuardDecision.BUSY
        if transaction_id in self._submitted:
            return GuardDecision.ALREADY_SUBMITTED
        self._in_flight = transaction_id
        self._submitted.add(transaction_id)
        return GuardDecision.ACQUIRED

    def release(self, transaction_id: str, succeeded: bool) -> None:
        if self._in_flight == transaction_id:
            self._in_flight = None
        if not succeeded:
            self._submitted.discard(transaction_id)
