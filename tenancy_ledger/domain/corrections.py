"""Manual deficit corrections on a billing period"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from tenancy_ledger.domain.billing import HOUSE_ORDER, add_overpay, apply_payment, draw_overpay, latest_period, refresh
from tenancy_ledger.domain.exceptions import ValidationError
from tenancy_ledger.domain.models import BillingPeriod, Category
from tenancy_ledger.domain.money import ZERO, quantize
from tenancy_ledger.domain.waterfall import rebill


@dataclass
class CorrectionOutcome:
    period: BillingPeriod
    donor: Optional[BillingPeriod] = None
    from_own_overpay: Decimal = ZERO
    from_donor: Decimal = ZERO
    touched: List[BillingPeriod] = field(default_factory=list)


def correct_deficits(
    period: BillingPeriod,
    periods: Sequence[BillingPeriod],
    on: date,
    reference: str,
    rent_deficit: Optional[Decimal] = None,
    accumulated_water_bill: Optional[Decimal] = None,
    garbage_deficit: Optional[Decimal] = None,
    extra_charges_deficit: Optional[Decimal] = None,
    extra_description: str = "",
) -> CorrectionOutcome:
    """
    Overwrite outstanding balances on a period, then re-apply held overpay.

    Rent, garbage and extra charge corrections set the line's deficit (the
    expected amount becomes paid + deficit). A water correction sets the
    accumulated water bill; payments above it move to overpay.

    After correcting, the period's own overpay pays into it first, then
    overpay held on the tenant's most recent other ledger.

    Raises:
        ValidationError: Missing reference or negative correction
    """
    if not reference:
        raise ValidationError("Reference number is required")
    corrections = {
        "rent_deficit": rent_deficit,
        "accumulated_water_bill": accumulated_water_bill,
        "garbage_deficit": garbage_deficit,
        "extra_charges_deficit": extra_charges_deficit,
    }
    for name, value in corrections.items():
        if value is not None and value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")

    for category, value in (
        (Category.RENT, rent_deficit),
        (Category.GARBAGE_FEE, garbage_deficit),
        (Category.EXTRA_CHARGES, extra_charges_deficit),
    ):
        if value is None:
            continue
        line = period.line(category)
        previous = line.deficit
        rebill(line, line.amount + value, on, f"Deficit corrected from {previous} to {quantize(value)}")
    if extra_description:
        period.extra_charges.title = extra_description

    if accumulated_water_bill is not None:
        previous = period.water_bill.expected
        excess = rebill(
            period.water_bill,
            accumulated_water_bill,
            on,
            f"Accumulated water bill corrected from {previous} to {quantize(accumulated_water_bill)}",
        )
        add_overpay(period, excess, on, "Water bill payment above corrected accumulated amount")

    refresh(period, on, reference, f"Deficits corrected with reference {reference}")
    outcome = CorrectionOutcome(period=period, touched=[period])

    # Own overpay
    if not period.is_cleared and period.overpay > 0:
        held = draw_overpay(period, on, "Overpay applied to corrected deficits")
        result = apply_payment(period, held, on, reference, HOUSE_ORDER, "Overpay applied after correction")
        add_overpay(period, result.remainder, on, "Overpay left after correction")
        outcome.from_own_overpay = result.applied

    # Most recent ledger's overpay
    donor = latest_period([other for other in periods if other is not period])
    if not period.is_cleared and donor is not None and donor.overpay > 0:
        held = draw_overpay(donor, on, f"Overpay moved to {period.month} {period.year}", limit=period.global_deficit)
        result = apply_payment(period, held, on, reference, HOUSE_ORDER, f"Overpay from {donor.month} {donor.year} applied")
        add_overpay(donor, result.remainder, on, "Unused overpay returned")
        outcome.donor = donor
        outcome.from_donor = result.applied
        outcome.touched.append(donor)

    return outcome
