"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class CatalogItem(Base):
    """
    ORM model for catalog_items table.

    Purchasable digital items. Maintained by external admin tooling;
    read-only for this service.
    """

    __tablename__ = "catalog_items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KRW")
    is_purchasable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint("product_id", name="uq_catalog_items_product_id"),
        CheckConstraint("price_minor >= 0", name="ck_catalog_items_price_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<CatalogItem(id={self.id}, product_id={self.product_id}, "
            f"price={self.price_minor})>"
        )


class VerifiedPurchase(Base):
    """
    ORM model for purchases table (the entitlement ledger).

    At most one row per transaction_id. Rows are never updated or deleted
    by the purchase flow.
    """

    __tablename__ = "purchases"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    catalog_item_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("catalog_items.id", ondelete="RESTRICT"),
        nullable=False,
    )
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    price_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="verified")

    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("transaction_id", name="uq_purchases_transaction_id"),
        CheckConstraint("price_minor >= 0", name="ck_purchases_price_non_negative"),
        CheckConstraint(
            "platform IN ('app_store', 'google_play')", name="ck_purchases_platform"
        ),
        CheckConstraint("status IN ('verified')", name="ck_purchases_status"),
        Index("idx_purchases_user_catalog", "user_id", "catalog_item_id"),
        Index("idx_purchases_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<VerifiedPurchase(id={self.id}, transaction_id={self.transaction_id}, "
            f"user_id={self.user_id})>"
        )


class TransactionLog(Base):
    """
    ORM model for transaction_logs table.

    Append-only audit trail: one row per terminal submission state. The
    raw proof itself is never stored, only its sha256 digest.
    """

    __tablename__ = "transaction_logs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    catalog_item_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    price_minor: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    raw_proof_digest: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("status IN ('success', 'failure')", name="ck_transaction_logs_status"),
        Index("idx_transaction_logs_transaction_id", "transaction_id"),
        Index("idx_transaction_logs_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionLog(id={self.id}, transaction_id={self.transaction_id}, "
            f"status={self.status})>"
        )
