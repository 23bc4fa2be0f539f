from __future__ import annotations

from decimal import Decimal

import pytest

from basesplit.core.amounts import parse_amount


@pytest.mark.parametrize(
    "raw, expected",
    [
        (10, Decimal("10.00")),
        (5.5, Decimal("5.50")),
        ("12.346", Decimal("12.35")),
        ("15,50", Decimal("15.50")),
        ("1,234.56", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234", Decimal("1234.00")),
        ("$ 7.99", Decimal("7.99")),
        ("-3.00", Decimal("-3.00")),
        ("(4.20)", Decimal("-4.20")),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [None, "", "abc", True, float("nan"), 1e30, Decimal("1E+30"), "1.5e2", "2 E-3", "9" * 40],
)
def test_parse_amount_rejects_non_amounts(raw):
    assert parse_amount(raw) is None
