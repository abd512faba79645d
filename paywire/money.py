"""
Money Precision Module

Single-currency amounts as Decimal with fixed precision. NEVER uses float
for monetary values; floats coming from callers are converted through str.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

from .errors import InvalidSum

# Set global decimal context for financial precision
getcontext().prec = 28

PRECISION = 2
QUANTUM = Decimal('0.1') ** PRECISION
MINOR_UNITS = 10 ** PRECISION

# Largest accepted amount; stored cents must fit a signed 64-bit INTEGER
MAX_AMOUNT = Decimal(10) ** 15

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a number or numeric string to a Decimal rounded to PRECISION

    Raises:
        InvalidSum: If the value is not a finite number or exceeds MAX_AMOUNT
    """
    if isinstance(value, bool):
        raise InvalidSum(f"Not an amount: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidSum(f"Not an amount: {value!r}")
    if not value.is_finite():
        raise InvalidSum(f"Not an amount: {value!r}")
    if abs(value) > MAX_AMOUNT:
        raise InvalidSum(f"Amount exceeds {MAX_AMOUNT}: {value!r}")
    try:
        return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidSum(f"Not an amount: {value!r}")


def to_minor_units(amount: Decimal) -> int:
    """Decimal amount -> integer cents for storage"""
    return int(Decimal(amount).quantize(QUANTUM, rounding=ROUND_HALF_UP) * MINOR_UNITS)


def from_minor_units(units: int) -> Decimal:
    """Integer cents from storage -> Decimal amount"""
    return (Decimal(units) / MINOR_UNITS).quantize(QUANTUM)


def format_amount(amount: Decimal) -> str:
    """Plain string form used on the wire, e.g. '-200.00'"""
    return f"{amount:.{PRECISION}f}"
