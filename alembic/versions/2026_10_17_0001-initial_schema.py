"""initial schema

Revision ID: 2026_10_17_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the purchase verification schema:
- catalog_items: purchasable digital items (read-only for the service)
- purchases: entitlement ledger, unique per transaction_id
- transaction_logs: append-only audit trail of every submission outcome
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_17_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "catalog_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("price_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="KRW"),
        sa.Column("is_purchasable", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", name="uq_catalog_items_product_id"),
        sa.CheckConstraint("price_minor >= 0", name="ck_catalog_items_price_non_negative"),
    )

    op.create_table(
        "purchases",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("catalog_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("price_minor", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="verified"),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["catalog_item_id"], ["catalog_items.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_id", name="uq_purchases_transaction_id"),
        sa.CheckConstraint("price_minor >= 0", name="ck_purchases_price_non_negative"),
        sa.CheckConstraint(
            "platform IN ('app_store', 'google_play')", name="ck_purchases_platform"
        ),
        sa.CheckConstraint("status IN ('verified')", name="ck_purchases_status"),
    )
    op.create_index("idx_purchases_user_catalog", "purchases", ["user_id", "catalog_item_id"])
    op.create_index("idx_purchases_user_created", "purchases", ["user_id", "created_at"])

    op.create_table(
        "transaction_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("catalog_item_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("price_minor", sa.BigInteger(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_kind", sa.String(length=50), nullable=True),
        sa.Column("raw_proof_digest", sa.String(length=100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('success', 'failure')", name="ck_transaction_logs_status"),
    )
    op.create_index(
        "idx_transaction_logs_transaction_id", "transaction_logs", ["transaction_id"]
    )
    op.create_index(
        "idx_transaction_logs_user_created", "transaction_logs", ["user_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_transaction_logs_user_created", table_name="transaction_logs")
    op.drop_index("idx_transaction_logs_transaction_id", table_name="transaction_logs")
    op.drop_table("transaction_logs")

    op.drop_index("idx_purchases_user_created", table_name="purchases")
    op.drop_index("idx_purchases_user_catalog", table_name="purchases")
    op.drop_table("purchases")

    op.drop_table("catalog_items")
