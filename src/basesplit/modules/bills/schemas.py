from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class LineItemOut(BaseModel):
    id: uuid.UUID
    bill_id: uuid.UUID
    position: int
    description: str
    price: Decimal
    claimed_by: str | None
    paid_tx_hash: str | None
    claimed_at: datetime | None


class BillOut(BaseModel):
    id: uuid.UUID
    conversation_id: str
    payer_address: str
    payer_display_name: str | None = None
    image_ref: str | None
    total_amount: Decimal
    merchant: str
    currency: str
    created_at: datetime
    is_settled: bool
    settled_at: datetime | None


class BillWithItemsOut(BaseModel):
    bill: BillOut
    items: list[LineItemOut]
