"""Decimal helpers for monetary amounts."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(OUTPUT_PRECISION, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a stored value to Decimal, or None when it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def sum_amounts(amounts: Any) -> Decimal:
    """Sum an iterable of Decimals, starting from an exact zero."""
    total = ZERO
    for amount in amounts:
        total += amount
    return total
