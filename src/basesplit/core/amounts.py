from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

CENTS = Decimal("0.01")

_EXPONENT_RE = re.compile(r"\d\s*[eE]\s*[+-]?\d")


def parse_amount(raw: object) -> Decimal | None:
    """Parse a backend-supplied amount (number or localized string) into cents."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (Decimal, int, float)):
        try:
            value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
            return value.quantize(CENTS) if value.is_finite() else None
        except InvalidOperation:
            # too many digits to hold in cents
            return None

    s = str(raw).strip()
    if not s or _EXPONENT_RE.search(s):
        return None
    negative = s.startswith("-") or (s.startswith("(") and s.endswith(")"))
    s = s.replace("\u202f", " ").replace("\xa0", " ")
    s = re.sub(r"[^0-9,.' ]", "", s)
    s = s.replace(" ", "").replace("'", "")
    if not s or not any(ch.isdigit() for ch in s):
        return None

    if "," in s and "." in s:
        decimal_sep = "," if s.rfind(",") > s.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        normalized = s.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in s:
        if s.count(",") > 1:
            normalized = s.replace(",", "")
        else:
            idx = s.rfind(",")
            digits_after = len(s) - idx - 1
            if digits_after == 3 and len(s[:idx]) <= 3:
                normalized = s.replace(",", "")
            else:
                normalized = s.replace(",", ".")
    elif "." in s and s.count(".") > 1:
        normalized = s.replace(".", "")
    else:
        normalized = s

    try:
        value = Decimal(normalized).quantize(CENTS)
    except InvalidOperation:
        return None
    return -value if negative else value
