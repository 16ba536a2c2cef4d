"""
Fixed-point helpers for monetary amounts.

All stored amounts are Decimals with two places, rounded half-up the way
accounting figures are. Binary floats are only accepted as input (through
their string form) and never produced.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from app.core.exceptions import DataIntegrityError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value, field: Optional[str] = None) -> Decimal:
    """Convert value into a 2-place Decimal or raise DataIntegrityError."""
    label = field or "amount"
    if value is None:
        raise DataIntegrityError(f"Missing monetary value for {label}")
    if isinstance(value, bool):
        raise DataIntegrityError(f"Malformed monetary value for {label}: {value!r}")

    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, float):
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise DataIntegrityError(f"Malformed monetary value for {label}: {value!r}")

    if not amount.is_finite():
        raise DataIntegrityError(f"Malformed monetary value for {label}: {value!r}")

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def require_non_negative(value, field: Optional[str] = None) -> Decimal:
    amount = to_money(value, field)
    if amount < ZERO:
        raise DataIntegrityError(f"Negative monetary value for {field or 'amount'}: {amount}")
    return amount


def sum_money(values: Iterable, field: Optional[str] = None) -> Decimal:
    """Exact sum; the result does not depend on iteration order."""
    total = ZERO
    for value in values:
        total += to_money(value, field)
    return total


def percentage(part, whole) -> Decimal:
    """part / whole * 100 rounded to 2 places, 0 when whole is not positive."""
    whole = to_money(whole)
    if whole <= ZERO:
        return ZERO
    return (to_money(part) / whole * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
