"""Decimal helpers for monetary values.

All engine arithmetic stays in exact ``Decimal``; rounding to two places
happens only through ``quantize_money`` at the output boundary.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
DAYS_IN_YEAR = Decimal("365")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an int, float, str or Decimal to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1 rather than its binary
    expansion. Raises ValueError for values that are not numbers at all;
    non-finite values (NaN, Infinity) are returned as-is for the caller to
    reject with record context.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a monetary value: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a monetary value: {value!r}") from e


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part: int | Decimal, whole: int | Decimal) -> Decimal:
    """part / whole * 100 rounded to 2 places; 0 when whole is 0"""
    if not whole:
        return quantize_money(ZERO)
    return quantize_money(Decimal(part) * HUNDRED / Decimal(whole))
