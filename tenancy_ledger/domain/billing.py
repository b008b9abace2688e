"""Billing period ledger operations: open, pay, carry forward, recompute"""

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from tenancy_ledger.domain.exceptions import InvariantViolation, ValidationError
from tenancy_ledger.domain.models import (
    BillingPeriod,
    Category,
    ChargeLine,
    GlobalDeficitEntry,
    GlobalTransactionEntry,
    ReferenceEntry,
)
from tenancy_ledger.domain.money import ZERO, quantize, total
from tenancy_ledger.domain.waterfall import WaterfallResult, allocate_in_order, check_line, excess_entry, rebill
from tenancy_ledger.utils.date_utils import normalize_month, period_key

# Priority for house obligations
HOUSE_ORDER = (Category.RENT, Category.WATER_BILL, Category.GARBAGE_FEE, Category.EXTRA_CHARGES)

# The current month's water is not metered yet; it arrives next cycle as carry-forward
CURRENT_PERIOD_ORDER = (Category.RENT, Category.GARBAGE_FEE, Category.EXTRA_CHARGES)

LABELS = {
    Category.RENT: "Rent",
    Category.WATER_BILL: "Water bill",
    Category.GARBAGE_FEE: "Garbage fee",
    Category.EXTRA_CHARGES: "Extra charges",
}


def open_period(
    tenant_id: str,
    year: int,
    month: str,
    rent: Decimal,
    garbage_fee: Decimal,
    on: date,
    reference: str = "",
) -> BillingPeriod:
    """New billing period owing rent and garbage fee in full"""
    month = normalize_month(month)
    period = BillingPeriod(
        tenant_id=tenant_id,
        year=year,
        month=month,
        rent=ChargeLine.billed(quantize(rent), on, f"Rent due for {month} {year}"),
        water_bill=ChargeLine(),
        garbage_fee=ChargeLine.billed(quantize(garbage_fee), on, f"Garbage fee due for {month} {year}"),
        extra_charges=ChargeLine(),
        reference_number=reference,
    )
    refresh(period, on, reference, "Billing period opened")
    return period


def check_period(period: BillingPeriod) -> None:
    """Verify line invariants and the derived period fields"""
    label = f"{period.month} {period.year}"
    for category in Category:
        check_line(period.line(category), f"{label} {LABELS[category]}")
    if period.overpay < 0:
        raise InvariantViolation(f"{label}: negative overpay {period.overpay}")
    if period.global_deficit != total(line.deficit for line in period.lines()):
        raise InvariantViolation(f"{label}: global deficit out of sync with charge lines")
    if period.is_cleared != all(line.paid for line in period.lines()):
        raise InvariantViolation(f"{label}: cleared flag out of sync with charge lines")


def refresh(period: BillingPeriod, on: date, reference: str, description: str) -> None:
    """Recompute global deficit, totals and cleared flag; append ledger-wide history"""
    before = period.global_deficit
    period.global_deficit = total(line.deficit for line in period.lines())
    period.is_cleared = all(line.paid for line in period.lines())
    period.total_amount_paid = quantize(total(line.amount for line in period.lines()) + period.overpay)

    period.global_deficit_history.append(
        GlobalDeficitEntry(
            year=period.year,
            month=period.month,
            total_deficit=period.global_deficit,
            change=quantize(period.global_deficit - before),
            date=on,
            description=description,
        )
    )
    period.global_transaction_history.append(
        GlobalTransactionEntry(
            date=on,
            reference_number=reference,
            rent=period.rent.amount,
            water_bill=period.water_bill.amount,
            garbage_fee=period.garbage_fee.amount,
            extra_charges=period.extra_charges.amount,
            total=period.total_amount_paid,
            global_deficit=period.global_deficit,
        )
    )
    check_period(period)


def record_reference(period: BillingPeriod, amount: Decimal, on: date, reference: str, description: str) -> None:
    """Track which payment reference contributed how much to this ledger"""
    period.reference_no_history.append(
        ReferenceEntry(
            date=on,
            previous_reference_number=period.reference_number,
            reference_number=reference,
            amount=quantize(amount),
            description=description,
        )
    )
    period.reference_number = reference


def apply_payment(
    period: BillingPeriod,
    amount: Decimal,
    on: date,
    reference: str,
    order: Sequence[Category] = HOUSE_ORDER,
    description: str = "Payment applied",
) -> WaterfallResult:
    """Run the waterfall over a period's lines; the remainder is returned, not kept"""
    result = allocate_in_order(
        [period.line(category) for category in order],
        [LABELS[category] for category in order],
        amount,
        on,
        reference,
    )
    if result.applied > 0:
        record_reference(period, result.applied, on, reference, description)
    refresh(period, on, reference, description)
    return result


def add_overpay(period: BillingPeriod, amount: Decimal, on: date, description: str) -> None:
    """Hold surplus money on the ledger"""
    if amount < 0:
        raise ValidationError(f"Overpay must be non-negative, got {amount}")
    if amount == 0:
        return
    period.excess_history.append(excess_entry(period.overpay, amount, on, description))
    period.overpay = quantize(period.overpay + amount)
    period.total_amount_paid = quantize(total(line.amount for line in period.lines()) + period.overpay)


def draw_overpay(period: BillingPeriod, on: date, description: str, limit: Optional[Decimal] = None) -> Decimal:
    """Take (up to `limit` of) the held overpay out of the ledger"""
    drawn = period.overpay if limit is None else min(period.overpay, quantize(limit))
    if drawn <= 0:
        return ZERO
    period.excess_history.append(excess_entry(period.overpay, -drawn, on, description))
    period.overpay = quantize(period.overpay - drawn)
    period.total_amount_paid = quantize(total(line.amount for line in period.lines()) + period.overpay)
    return drawn


def carry_forward(
    prior: BillingPeriod,
    water_bill: Decimal,
    extra_charges: Decimal,
    on: date,
    reference: str,
    extra_description: str = "",
) -> bool:
    """
    Fold last cycle's metered water and unpaid extra charges into the prior ledger.

    Both amounts are added to the lines' expected totals so they surface as
    additional deficit, which re-opens the prior period.

    Returns:
        True when anything was carried
    """
    carried = False
    if water_bill > 0:
        excess = rebill(
            prior.water_bill,
            prior.water_bill.expected + water_bill,
            on,
            f"Accumulated water bill of {quantize(water_bill)} recorded",
        )
        add_overpay(prior, excess, on, "Water bill payment above accumulated amount")
        carried = True
    if extra_charges > 0:
        excess = rebill(
            prior.extra_charges,
            prior.extra_charges.expected + extra_charges,
            on,
            f"Extra charges of {quantize(extra_charges)} recorded",
        )
        add_overpay(prior, excess, on, "Extra charges payment above expected amount")
        if extra_description:
            prior.extra_charges.title = extra_description
        carried = True

    if carried:
        prior.carried_forward = True
        refresh(prior, on, reference, "Deficit carried forward from the following cycle")
    return carried


def bill_extra_charges(period: BillingPeriod, amount: Decimal, on: date, reference: str, description: str = "") -> None:
    """Add extra charges raised for this period"""
    if amount <= 0:
        return
    excess = rebill(
        period.extra_charges,
        period.extra_charges.expected + amount,
        on,
        f"Extra charges of {quantize(amount)} billed",
    )
    add_overpay(period, excess, on, "Extra charges payment above expected amount")
    if description:
        period.extra_charges.title = description
    refresh(period, on, reference, "Extra charges billed")


def sort_periods(periods: Iterable[BillingPeriod]) -> List[BillingPeriod]:
    """Oldest first by (year, month index), never by insertion order"""
    return sorted(periods, key=lambda period: period_key(period.year, period.month))


def uncleared(periods: Iterable[BillingPeriod]) -> List[BillingPeriod]:
    return [period for period in sort_periods(periods) if not period.is_cleared]


def find_period(periods: Iterable[BillingPeriod], year: int, month: str) -> Optional[BillingPeriod]:
    month = normalize_month(month)
    for period in periods:
        if period.year == year and period.month == month:
            return period
    return None


def latest_period(periods: Iterable[BillingPeriod]) -> Optional[BillingPeriod]:
    ordered = sort_periods(periods)
    return ordered[-1] if ordered else None


def collect_overpay(periods: Iterable[BillingPeriod], on: date, reference: str) -> tuple:
    """
    Draw every ledger's held overpay into one pool.

    Returns:
        (pooled amount, periods that gave money)
    """
    pooled = ZERO
    donors = []
    for period in sort_periods(periods):
        drawn = draw_overpay(period, on, f"Overpay forwarded with payment {reference}")
        if drawn > 0:
            pooled += drawn
            donors.append(period)
    return quantize(pooled), donors
