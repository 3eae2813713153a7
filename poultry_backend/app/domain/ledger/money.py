"""
Decimal helpers for money and weight.

Accumulation is always done on unrounded Decimals; rounding happens only
when a computed (non-additive) result is persisted or displayed.
"""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
GRAM = Decimal("0.001")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Convert user or database input to Decimal without going through float formatting."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_weight(value) -> Decimal:
    return to_decimal(value).quantize(GRAM, rounding=ROUND_HALF_UP)


def is_whole_cents(value) -> bool:
    """True when the amount needs no rounding to be stored as money."""
    amount = to_decimal(value)
    return amount == amount.quantize(CENT)
