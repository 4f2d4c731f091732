"""
Restore Reconciler - Re-submits every purchase the platform still holds.

Used after reinstall or on a new device. Each held purchase is submitted,
counted, and finalized; one bad item never stops the pass.
"""

from structlog import get_logger

from app.client.commerce import CommerceConnection
from app.client.controller import PurchaseSubmitter
from app.exceptions import CommerceError, UnauthorizedError
from app.models.domain import RestoreSummary

logger = get_logger(__name__)


class RestoreReconciler:
    def __init__(self, connection: CommerceConnection, submitter: PurchaseSubmitter) -> None:
        self._connection = connection
        self._submitter = submitter

    async def restore(self, user_id: str | None) -> RestoreSummary:
        """
        Reconcile held purchases with the server ledger.

        An item counts as restored when the server accepts it (including
        already recorded) and finalize succeeds; anything else counts as
        failed.

        Raises:
            UnauthorizedError: No signed-in user
            CommerceError: The platform could not enumerate held purchases
        """
        if not user_id:
            raise UnauthorizedError("Sign in required to restore purchases")

        held = await self._connection.list_held_purchases()
        logger.info("restore_started", user_id=user_id, held_count=len(held))

        restored = 0
        failed = 0
        for claim in held:
            ok = False
            try:
                result = await self._submitter.submit(claim)
                ok = result.success
                if not ok:
                    logger.warning(
                        "restore_item_rejected",
                        transaction_id=claim.transaction_id,
                        error_kind=result.error_kind.value if result.error_kind else None,
                    )
            except Exception:
                logger.exception("restore_item_submit_failed", transaction_id=claim.transaction_id)

            try:
                await self._connection.finalize(claim)
            except CommerceError as exc:
                ok = False
                logger.warning(
                    "restore_item_finalize_failed",
                    transaction_id=claim.transaction_id,
                    code=exc.code,
                )

            if ok:
                restored += 1
            else:
                failed += 1

        summary = RestoreSummary(restored_count=restored, failed_count=failed)
        logger.info(
            "restore_completed",
            user_id=user_id,
            restored_count=summary.restored_count,
            failed_count=summary.failed_count,
        )
        return summary
