from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from basesplit.core.models import Base, UUIDPrimaryKey, utcnow


class Bill(UUIDPrimaryKey, Base):
    __tablename__ = "bills"
    __table_args__ = (CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),)

    conversation_id: Mapped[str] = mapped_column(String(255), index=True)
    payer_address: Mapped[str] = mapped_column(String(64), index=True)
    image_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    merchant: Mapped[str] = mapped_column(String(200), default="Unknown")
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    source_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    is_settled: Mapped[bool] = mapped_column(Boolean, default=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "LineItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LineItem.position",
    )


class LineItem(UUIDPrimaryKey, Base):
    __tablename__ = "line_items"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_line_items_price_non_negative"),
        CheckConstraint(
            "(claimed_by IS NULL AND paid_tx_hash IS NULL)"
            " OR (claimed_by IS NOT NULL AND paid_tx_hash IS NOT NULL)",
            name="ck_line_items_claim_pair",
        ),
    )

    bill_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("bills.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    claimed_by: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    paid_tx_hash: Mapped[str | None] = mapped_column(String(200), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    bill = relationship("Bill", back_populates="items")
