"""Decimal money primitive: parsing, rounding and clamping helpers"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from tenancy_ledger.domain.exceptions import ValidationError

MONEY_QUANTIZE = Decimal("0.01")  # Single currency, 2 decimal places
ZERO = Decimal("0.00")

MoneyInput = Union[Decimal, int, str, None]


def quantize(value: Decimal) -> Decimal:
    """Round to the ledger's 2 decimal places (half-up, as cashiers round)"""
    return value.quantize(MONEY_QUANTIZE, rounding=ROUND_HALF_UP)


def to_money(value: MoneyInput, field: str = "amount", default: Optional[Decimal] = None) -> Decimal:
    """
    Parse and validate a monetary input.

    Missing input is only accepted when the caller declares an explicit
    default. Floats are rejected because binary rounding leaks into ledgers.

    Args:
        value: Decimal, integer or numeric string
        field: Field name used in the error message
        default: Value returned when `value` is None or an empty string

    Returns:
        Non-negative Decimal quantized to 0.01

    Raises:
        ValidationError: Missing (without default), unparseable or negative input

    Example:
        >>> to_money("10300")
        Decimal('10300.00')
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValidationError(f"{field} is required")
        return quantize(Decimal(default))

    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal or integer value, got {type(value).__name__}")

    try:
        parsed = Decimal(value.strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} is not a valid amount: {value!r}")

    if not parsed.is_finite():
        raise ValidationError(f"{field} is not a valid amount: {value!r}")
    if parsed < 0:
        raise ValidationError(f"{field} must be non-negative, got {parsed}")

    return quantize(parsed)


def clamp_non_negative(value: Decimal) -> Decimal:
    """max(value, 0) at money precision"""
    return quantize(max(value, ZERO))


def total(values: Iterable[Decimal]) -> Decimal:
    """Sum amounts; an empty iterable sums to zero"""
    return quantize(sum(values, ZERO))
