from __future__ import annotations

import time
from datetime import date
from decimal import Decimal
from typing import Any

from basesplit.core.amounts import CENTS, parse_amount
from basesplit.core.errors import EmptyExtraction, ImageUnreadable, NotAReceipt
from basesplit.core.logging import get_logger, log_event, monotonic_ms
from basesplit.modules.receipts.backends import VisionBackend
from basesplit.modules.receipts.schemas import UNKNOWN_MERCHANT, ParsedItem, ParsedReceipt

logger = get_logger(__name__)

ZERO = Decimal("0.00")


def calculate_total(receipt: ParsedReceipt) -> Decimal:
    """Stated total when present and non-zero, else items plus tax and tip."""
    if receipt.total:
        return receipt.total.quantize(CENTS)
    items_total = sum((item.price for item in receipt.items), ZERO)
    return (items_total + (receipt.tax or ZERO) + (receipt.tip or ZERO)).quantize(CENTS)


class ReceiptInterpreter:
    def __init__(self, backend: VisionBackend, *, default_currency: str = "USD") -> None:
        self._backend = backend
        self._default_currency = default_currency.strip().upper() or "USD"

    def interpret(self, image: bytes, mime_type: str | None = None) -> ParsedReceipt:
        start = time.monotonic()
        raw = self._backend.extract(image, mime_type=mime_type or "image/jpeg")
        receipt = self.normalize(raw)
        log_event(
            logger,
            "receipt.interpreted",
            backend=self._backend.name,
            item_count=len(receipt.items),
            total=str(receipt.total),
            currency=receipt.currency,
            merchant=receipt.merchant,
            duration_ms=monotonic_ms(start),
        )
        return receipt

    def normalize(self, raw: dict[str, Any]) -> ParsedReceipt:
        error = raw.get("error")
        if error:
            code = str(error).strip().upper()
            if code == "NOT_A_RECEIPT":
                raise NotAReceipt(backend=self._backend.name)
            raise ImageUnreadable(backend=self._backend.name, backend_error=code)

        raw_items = raw.get("items")
        if not isinstance(raw_items, list):
            raise EmptyExtraction("Receipt data is missing the items array")

        items: list[ParsedItem] = []
        for idx, entry in enumerate(raw_items):
            item = _parse_item(entry)
            if item is None:
                log_event(logger, "receipt.item.dropped", index=idx, entry=str(entry)[:200])
                continue
            items.append(item)
        if not items:
            raise EmptyExtraction()

        receipt = ParsedReceipt(
            items=items,
            total=_non_negative(_first_present(raw, "total_amount", "total")),
            subtotal=_non_negative(raw.get("subtotal")),
            tax=_non_negative(raw.get("tax")),
            tip=_non_negative(raw.get("tip")),
            merchant=_clean_text(raw.get("merchant")) or UNKNOWN_MERCHANT,
            date=_parse_date(raw.get("date")),
            currency=_clean_currency(raw.get("currency")) or self._default_currency,
        )
        if not receipt.total:
            receipt.total = calculate_total(receipt)
        return receipt


def _parse_item(entry: object) -> ParsedItem | None:
    if not isinstance(entry, dict):
        return None
    description = _clean_text(entry.get("description"))
    price = parse_amount(entry.get("price"))
    if not description or price is None or price < 0:
        return None
    return ParsedItem(description=description, price=price)


def _non_negative(raw: object) -> Decimal | None:
    value = parse_amount(raw)
    if value is None or value < 0:
        return None
    return value


def _clean_text(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    text = " ".join(raw.split())
    if not text or text.lower() in {"null", "none", "unknown"}:
        return None
    return text


def _clean_currency(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()
    if len(code) != 3 or not code.isalpha():
        return None
    return code


def _parse_date(raw: object) -> date | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip()[:10])
    except ValueError:
        return None


def _first_present(raw: dict[str, Any], *keys: str) -> object:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None
