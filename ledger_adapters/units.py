"""
Unit conversion between human-readable amounts and ledger base units.

``base = amount * 10**subunits``. Scaling only moves the decimal
exponent and never rounds, so a round trip through both directions is
exact at any number of significant digits (uint256 token amounts
included).
"""

from decimal import Decimal
from typing import Union

Number = Union[Decimal, int, str]

MAX_SUBUNITS = 18


def _as_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(str(value))


def _check_subunits(subunits: int) -> None:
    if subunits < 0 or subunits > MAX_SUBUNITS:
        raise ValueError(f"subunits must be between 0 and {MAX_SUBUNITS}, got {subunits}")


def _shift(amount: Number, places: int) -> Decimal:
    """``amount * 10**places`` built from the digit tuple, without a context."""
    value = _as_decimal(amount)
    if not value.is_finite():
        raise ValueError(f"Cannot scale non-finite amount {value}")
    sign, digits, exponent = value.as_tuple()
    return Decimal((sign, digits, exponent + places))


def convert_to_base_unit(amount: Number, subunits: int) -> Decimal:
    """Scale a human amount up to base units."""
    _check_subunits(subunits)
    return _shift(amount, subunits)


def convert_from_base_unit(amount: Number, subunits: int) -> Decimal:
    """Scale a base-unit amount down to human units."""
    _check_subunits(subunits)
    return _shift(amount, -subunits)


def to_base_integer(amount: Number, subunits: int) -> int:
    """
    Base-unit amount as an integer, truncating anything below one base unit.

    This is the value placed on the wire when building a transaction.
    """
    # int() truncates toward zero exactly, whatever the digit count
    return int(convert_to_base_unit(amount, subunits))
