"""Cross-period deficit clearer: settle older ledgers before newer ones"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from tenancy_ledger.domain.billing import HOUSE_ORDER, apply_payment, uncleared
from tenancy_ledger.domain.exceptions import ValidationError
from tenancy_ledger.domain.models import BillingPeriod
from tenancy_ledger.domain.money import ZERO, quantize


@dataclass
class ClearingResult:
    """Money left after clearing and the ledgers that changed"""

    remainder: Decimal
    applied: Decimal = ZERO
    touched: List[BillingPeriod] = field(default_factory=list)


def clear_across_periods(
    periods: Iterable[BillingPeriod],
    amount: Decimal,
    on: date,
    reference: str,
    label: Optional[str] = None,
) -> ClearingResult:
    """
    Apply money to uncleared billing periods, oldest first.

    Each period is paid in house order (rent, water, garbage, extra charges)
    until the money runs out. Cleared periods are never touched.

    Args:
        periods: All billing periods of one tenant
        amount: Money available for arrears
        on: Payment date
        reference: Payment reference number
        label: Cycle that triggered the clearing, e.g. "March 2024"

    Returns:
        ClearingResult with the unused remainder and modified periods
    """
    if amount < 0:
        raise ValidationError(f"Clearing amount must be non-negative, got {amount}")

    remainder = quantize(amount)
    applied = ZERO
    touched: List[BillingPeriod] = []
    description = f"Deficit cleared during {label}" if label else "Deficit cleared"

    for period in uncleared(periods):
        if remainder <= 0:
            break
        result = apply_payment(period, remainder, on, reference, HOUSE_ORDER, description)
        touched.append(period)
        applied += result.applied
        remainder = result.remainder

    return ClearingResult(remainder=remainder, applied=quantize(applied), touched=touched)
