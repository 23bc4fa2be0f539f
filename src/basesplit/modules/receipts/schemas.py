from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

UNKNOWN_MERCHANT = "Unknown"


@dataclass(frozen=True)
class ParsedItem:
    description: str
    price: Decimal


@dataclass
class ParsedReceipt:
    items: list[ParsedItem] = field(default_factory=list)
    total: Decimal | None = None
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    tip: Decimal | None = None
    merchant: str = UNKNOWN_MERCHANT
    date: date | None = None
    currency: str = "USD"
