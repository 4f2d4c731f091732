"""
Entitlement Ledger - Durable record of verified purchases and the audit log.

NO DICTIONARIES - All data uses strongly typed models.

The purchases table holds at most one row per transaction id. The unique
constraint is the correctness backstop; record_if_absent uses a
conflict-aware insert so concurrent writers never raise on a duplicate.
"""

import asyncio
from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from app.db.models import TransactionLog, VerifiedPurchase
from app.exceptions import LogWriteFailedError, WriteVerificationError
from app.models.api import Platform, PurchaseStatus
from app.models.domain import PurchaseData, PurchaseIntent, RecordOutcome, TransactionLogData
from app.observability.metrics import metrics

logger = get_logger(__name__)


def to_purchase_data(row: VerifiedPurchase) -> PurchaseData:
    return PurchaseData(
        purchase_id=row.id,
        transaction_id=row.transaction_id,
        user_id=row.user_id,
        catalog_item_id=row.catalog_item_id,
        product_id=row.product_id,
        price_minor=row.price_minor,
        currency=row.currency,
        platform=Platform(row.platform),
        status=PurchaseStatus(row.status),
        verified_at=row.verified_at,
    )


class TransactionLogWriter:
    """
    Fire-and-forget writer for the transaction_logs table.

    Each entry is written in its own session on a background task, so a
    slow or failing audit write never delays or fails a submission.
    Failures are logged and counted, never raised.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def append(self, entry: TransactionLogData) -> None:
        """Schedule the write and return immediately."""
        task = asyncio.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for all scheduled writes (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _write(self, entry: TransactionLogData) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    TransactionLog(
                        id=uuid4(),
                        transaction_id=entry.transaction_id,
                        user_id=entry.user_id,
                        catalog_item_id=entry.catalog_item_id,
                        product_id=entry.product_id,
                        price_minor=entry.price_minor,
                        currency=entry.currency,
                        platform=entry.platform.value,
                        status=entry.status.value,
                        error_kind=entry.error_kind.value if entry.error_kind else None,
                        raw_proof_digest=entry.raw_proof_digest,
                    )
                )
                await session.commit()
        except Exception as exc:
            failure = LogWriteFailedError(entry.transaction_id, str(exc))
            logger.error(
                "transaction_log_write_failed",
                transaction_id=entry.transaction_id,
                status=entry.status.value,
                error=str(failure),
                exc_info=True,
            )
            metrics.record_log_write_failure()


class EntitlementLedger:
    """Ledger reads and writes on a request-scoped session."""

    def __init__(self, session: AsyncSession, log_writer: TransactionLogWriter) -> None:
        self.session = session
        self.log_writer = log_writer

    async def find_by_transaction_id(self, transaction_id: str) -> PurchaseData | None:
        stmt = select(VerifiedPurchase).where(VerifiedPurchase.transaction_id == transaction_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return to_purchase_data(row) if row is not None else None

    async def record_if_absent(
        self, transaction_id: str, purchase: PurchaseIntent
    ) -> RecordOutcome:
        """
        Insert the purchase unless a row for transaction_id already exists.

        Uses INSERT ... ON CONFLICT (transaction_id) DO NOTHING RETURNING id,
        then reads the row back. Two concurrent callers for the same
        transaction id both observe the single stored row.

        Raises:
            WriteVerificationError: Row not readable after the insert
        """
        stmt = (
            pg_insert(VerifiedPurchase)
            .values(
                id=uuid4(),
                transaction_id=transaction_id,
                user_id=purchase.user_id,
                catalog_item_id=purchase.catalog_item_id,
                product_id=purchase.product_id,
                price_minor=purchase.price_minor,
                currency=purchase.currency,
                platform=purchase.platform.value,
                status=PurchaseStatus.VERIFIED.value,
                verified_at=purchase.verified_at,
                created_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=[VerifiedPurchase.transaction_id])
            .returning(VerifiedPurchase.id)
        )
        try:
            result = await self.session.execute(stmt)
            inserted_id = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        # Verify write
        stored = await self.find_by_transaction_id(transaction_id)
        if stored is None:
            raise WriteVerificationError(f"Purchase {transaction_id} not found after insert")

        created = inserted_id is not None
        metrics.record_purchase(purchase.platform.value, created)
        logger.info(
            "ledger_record_if_absent",
            transaction_id=transaction_id,
            purchase_id=str(stored.purchase_id),
            created=created,
        )
        return RecordOutcome(created=created, purchase=stored)

    def append_log(self, entry: TransactionLogData) -> None:
        """Fire-and-forget audit write. Never raises, never blocks."""
        self.log_writer.append(entry)

    async def list_for_user(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> tuple[list[PurchaseData], int]:
        """The user's verified purchases, newest first, with the total count."""
        count_stmt = (
            select(func.count())
            .select_from(VerifiedPurchase)
            .where(VerifiedPurchase.user_id == user_id)
        )
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(VerifiedPurchase)
            .where(VerifiedPurchase.user_id == user_id)
            .order_by(VerifiedPurchase.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return [to_purchase_data(row) for row in result.scalars().all()], int(total)

    async def has_entitlement(self, user_id: str, catalog_item_id: UUID) -> PurchaseData | None:
        """The user's verified purchase of the catalog item, if any."""
        stmt = (
            select(VerifiedPurchase)
            .where(
                VerifiedPurchase.user_id == user_id,
                VerifiedPurchase.catalog_item_id == catalog_item_id,
                VerifiedPurchase.status == PurchaseStatus.VERIFIED.value,
            )
            .order_by(VerifiedPurchase.created_at)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return to_purchase_data(row) if row is not None else None
