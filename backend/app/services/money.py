"""
Fixed-point money helpers.

All pricing arithmetic is done in Decimal. Stored amounts are rounded to one
minor currency unit; tolerance checks compare integer minor units.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")
ONE = Decimal("1")
MINOR_UNIT = Decimal("0.01")
MM_PER_M = Decimal("1000")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Coerce form/table input to Decimal.

    Floats go through str() so 0.1 stays 0.1; blanks and garbage fall back to
    ``default`` (order forms routinely hold half-typed values).
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int(quantize_money(amount) * 100)


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(MINOR_UNIT)


def exceeds_minor_unit(current: Optional[Decimal], computed: Decimal) -> bool:
    """True when the two amounts differ by more than one minor unit."""
    return abs(to_minor_units(computed) - to_minor_units(current or ZERO)) > 1


def mm_to_m(value_mm: Decimal) -> Decimal:
    return value_mm / MM_PER_M


def format_money(amount: Optional[Decimal], currency: str = "₸") -> str:
    """Display form used on printed documents: 12 345.67 ₸."""
    value = quantize_money(amount or ZERO)
    whole = f"{value:,.2f}".replace(",", " ")
    return f"{whole} {currency}".strip()
