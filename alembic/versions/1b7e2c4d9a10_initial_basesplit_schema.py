"""initial basesplit schema

Revision ID: 1b7e2c4d9a10
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "1b7e2c4d9a10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "bills",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("conversation_id", sa.String(length=255), nullable=False),
        sa.Column("payer_address", sa.String(length=64), nullable=False),
        sa.Column("image_ref", sa.String(length=1024), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("merchant", sa.String(length=200), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("source_event_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_settled", sa.Boolean(), nullable=False),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),
        sa.UniqueConstraint("source_event_id", name="uq_bills_source_event_id"),
    )
    op.create_index("ix_bills_conversation_id", "bills", ["conversation_id"])
    op.create_index("ix_bills_payer_address", "bills", ["payer_address"])

    op.create_table(
        "line_items",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "bill_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("claimed_by", sa.String(length=64), nullable=True),
        sa.Column("paid_tx_hash", sa.String(length=200), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("price >= 0", name="ck_line_items_price_non_negative"),
        sa.CheckConstraint(
            "(claimed_by IS NULL AND paid_tx_hash IS NULL)"
            " OR (claimed_by IS NOT NULL AND paid_tx_hash IS NOT NULL)",
            name="ck_line_items_claim_pair",
        ),
    )
    op.create_index("ix_line_items_bill_id", "line_items", ["bill_id"])
    op.create_index("ix_line_items_claimed_by", "line_items", ["claimed_by"])

    op.create_table(
        "users",
        sa.Column("wallet_address", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("ens_name", sa.String(length=255), nullable=True),
        sa.Column("display_name", sa.String(length=200), nullable=True),
    )

    op.create_table(
        "ingestion_processed_event",
        sa.Column("event_id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("conversation_id", sa.String(length=255), nullable=False),
        sa.Column("content_kind", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column(
            "bill_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("bills.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("error_code", sa.String(length=100), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
    )
    op.create_index(
        "ix_ingestion_processed_event_conversation_id",
        "ingestion_processed_event",
        ["conversation_id"],
    )
    op.create_index(
        "ix_ingestion_processed_event_status", "ingestion_processed_event", ["status"]
    )


def downgrade() -> None:
    op.drop_index("ix_ingestion_processed_event_status", table_name="ingestion_processed_event")
    op.drop_index(
        "ix_ingestion_processed_event_conversation_id", table_name="ingestion_processed_event"
    )
    op.drop_table("ingestion_processed_event")
    op.drop_table("users")
    op.drop_index("ix_line_items_claimed_by", table_name="line_items")
    op.drop_index("ix_line_items_bill_id", table_name="line_items")
    op.drop_table("line_items")
    op.drop_index("ix_bills_payer_address", table_name="bills")
    op.drop_index("ix_bills_conversation_id", table_name="bills")
    op.drop_table("bills")
