"""Decimal helpers for monetary amounts.

Aggregates persist amounts as floats; every calculation converts to Decimal
through ``to_decimal`` first so binary float noise never leaks into totals.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value, symbol: str = "¥") -> str:
    return f"{symbol}{round_money(value)}"
