"""Money helpers: half-up rounding to 2 decimals and exact percentages."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, Decimal]

CENT = Decimal("0.01")


def to_decimal(value: Number | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps the shortest repr, so 1049.93 stays 1049.93
    return Decimal(str(value))


def round_money(value: Number | None) -> float:
    """Round half-up to 2 decimals (52.4965 → 52.50)."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def percent_of(amount: Number | None, rate: Number | None) -> Decimal:
    """Unrounded ``amount × rate / 100``."""
    return to_decimal(amount) * to_decimal(rate) / Decimal(100)


def money_equal(a: Number | None, b: Number | None, tolerance: Number = CENT) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) < to_decimal(tolerance)
