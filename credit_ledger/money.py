"""
Fixed-point money helpers.

Amounts are carried as integer minor units (cents) everywhere inside the
ledger. Conversion happens only at the edges: user input and storage rows.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")

# NUMERIC(12, 2) column: at most 9,999,999,999.99
AMOUNT_PRECISION = 12
AMOUNT_SCALE = 2
MAX_CENTS = 10 ** AMOUNT_PRECISION - 1
MAX_AMOUNT = Decimal(MAX_CENTS).scaleb(-AMOUNT_SCALE)


def to_cents(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        if abs(value) * 100 > MAX_CENTS:
            raise _too_large(value)
        return value * 100
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")

    # copy_abs() and the comparison are exact; arithmetic could overflow first
    if amount.copy_abs() > MAX_AMOUNT:
        raise _too_large(value)
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(f"Amount {value!r} has more than two decimal places")
    return int(cents)


def _too_large(value: Any) -> ValidationError:
    return ValidationError(f"Amount {value!r} exceeds the maximum of {MAX_AMOUNT}")


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)
