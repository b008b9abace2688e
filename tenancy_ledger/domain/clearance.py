"""Exit clearance settlement and final-period billing from deposits"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from tenancy_ledger.domain.billing import (
    add_overpay,
    apply_payment,
    collect_overpay,
    find_period,
    open_period,
    refresh,
    uncleared,
)
from tenancy_ledger.domain.clearing import clear_across_periods
from tenancy_ledger.domain.deposits import RENT_DEPOSIT, WATER_DEPOSIT, draw_deposit
from tenancy_ledger.domain.exceptions import InvariantViolation, PendingObligationsError, ValidationError
from tenancy_ledger.domain.models import (
    BillingPeriod,
    Category,
    ChargeLine,
    Clearance,
    FeeItem,
    GlobalDeficitEntry,
    ReferenceEntry,
    Tenant,
    Transaction,
)
from tenancy_ledger.domain.money import ZERO, quantize, total
from tenancy_ledger.domain.waterfall import allocate_in_order, check_line, excess_entry, rebill
from tenancy_ledger.utils.date_utils import month_name, normalize_month

FINAL_PERIOD_ORDER = (Category.WATER_BILL, Category.GARBAGE_FEE, Category.EXTRA_CHARGES)


def ensure_no_pending(periods: Sequence[BillingPeriod], action: str) -> None:
    """
    Raise if any billing period is uncleared.

    Raises:
        PendingObligationsError: Carries the (year, month) of every uncleared period
    """
    pending = uncleared(periods)
    if pending:
        listed = ", ".join(f"{period.month} {period.year}" for period in pending)
        raise PendingObligationsError(
            f"Cannot {action}: tenant has uncleared payments ({listed})",
            periods=[(period.year, period.month) for period in pending],
        )


def _labels(clearance: Clearance) -> List[str]:
    return ["Painting fee", *[line.title or "Miscellaneous fee" for line in clearance.miscellaneous]]


def _refresh(clearance: Clearance, on: date, description: str) -> None:
    before = clearance.global_deficit
    for line, label in zip(clearance.lines(), _labels(clearance)):
        check_line(line, label)
    clearance.global_deficit = total(line.deficit for line in clearance.lines())
    clearance.is_cleared = all(line.paid for line in clearance.lines())
    clearance.total_amount_paid = quantize(total(line.amount for line in clearance.lines()) + clearance.overpay)
    clearance.global_deficit_history.append(
        GlobalDeficitEntry(
            year=clearance.year,
            month=clearance.month,
            total_deficit=clearance.global_deficit,
            change=quantize(clearance.global_deficit - before),
            date=on,
            description=description,
        )
    )
    if clearance.overpay < 0:
        raise InvariantViolation(f"Clearance for tenant {clearance.tenant_id} has negative overpay")


def _pay_clearance(clearance: Clearance, amount: Decimal, on: date, reference: str, description: str) -> Decimal:
    """Painting fee, then miscellaneous fees in order; surplus is refundable overpay"""
    result = allocate_in_order(clearance.lines(), _labels(clearance), amount, on, reference)
    if amount > 0:
        clearance.transactions.append(
            Transaction(amount=quantize(amount), date=on, reference_number=reference, description=description)
        )
        clearance.reference_no_history.append(
            ReferenceEntry(
                date=on,
                previous_reference_number=clearance.reference_number,
                reference_number=reference,
                amount=quantize(amount),
                description=description,
            )
        )
        clearance.reference_number = reference
    if result.remainder > 0:
        clearance.excess_history.append(
            excess_entry(clearance.overpay, result.remainder, on, "Balance refundable to tenant")
        )
        clearance.overpay = quantize(clearance.overpay + result.remainder)
    return result.remainder


def settle(
    tenant: Tenant,
    periods: Sequence[BillingPeriod],
    exit_date: date,
    painting_fee: Decimal,
    miscellaneous: Sequence[FeeItem],
    reference: str = "",
) -> Clearance:
    """
    Settle exit fees from the tenant's remaining deposits.

    Remaining rent and water deposits pay the painting fee first and then each
    miscellaneous fee in the order given. Money left over is refundable
    overpay; any unpaid fee stays as a clearance deficit.

    Raises:
        PendingObligationsError: Uncleared billing periods exist (nothing is changed)
        ValidationError: Negative fee
    """
    ensure_no_pending(periods, "settle exit clearance")
    if painting_fee < 0 or any(item.amount < 0 for item in miscellaneous):
        raise ValidationError("Exit fees must be non-negative")

    reference = reference or f"CLEARANCE-{tenant.id}"
    clearance = Clearance(
        tenant_id=tenant.id,
        year=exit_date.year,
        month=month_name(exit_date),
        exiting_date=exit_date,
        painting_fee=ChargeLine.billed(quantize(painting_fee), exit_date, "Painting fee due", title="Painting fee"),
        miscellaneous=[
            ChargeLine.billed(quantize(item.amount), exit_date, f"{item.title} due", title=item.title)
            for item in miscellaneous
        ],
        reference_number=reference,
    )

    ledger = tenant.deposits
    funds = draw_deposit(
        ledger, RENT_DEPOSIT, ledger.available_rent_deposit, exit_date, reference, "Applied to exit clearance"
    )
    funds += draw_deposit(
        ledger, WATER_DEPOSIT, ledger.available_water_deposit, exit_date, reference, "Applied to exit clearance"
    )

    _pay_clearance(clearance, quantize(funds), exit_date, reference, "Deposits applied to exit clearance")
    _refresh(clearance, exit_date, "Exit clearance settled")

    tenant.to_be_cleared = True
    tenant.exiting_date = exit_date
    return clearance


@dataclass
class ClearanceUpdate:
    """Result of paying more money into an exit clearance"""

    clearance: Clearance
    remainder: Decimal
    touched: List[BillingPeriod] = field(default_factory=list)


def update_clearance(
    clearance: Clearance,
    periods: Sequence[BillingPeriod],
    amount: Decimal,
    on: date,
    reference: str,
    month: Optional[str] = None,
    year: Optional[int] = None,
) -> ClearanceUpdate:
    """
    Pay additional money towards an exit clearance.

    Historical billing period arrears are cleared first; the rest runs the
    painting fee then miscellaneous waterfall. Each call appends the change
    in clearance deficit to history.
    """
    if amount < 0:
        raise ValidationError(f"Clearance amount must be non-negative, got {amount}")
    if not reference:
        raise ValidationError("Reference number is required")
    label = f"{normalize_month(month)} {year}" if month and year else "exit clearance"

    clearing = clear_across_periods(periods, quantize(amount), on, reference, label)
    remainder = _pay_clearance(clearance, clearing.remainder, on, reference, f"Clearance payment {reference}")
    _refresh(clearance, on, f"Clearance updated with payment {reference}")
    return ClearanceUpdate(clearance=clearance, remainder=remainder, touched=clearing.touched)


@dataclass
class FinalPeriodOutcome:
    """Final month billed against deposits"""

    period: BillingPeriod
    created: bool
    touched: List[BillingPeriod] = field(default_factory=list)
    from_overpay: Decimal = ZERO
    from_water_deposit: Decimal = ZERO
    from_rent_deposit: Decimal = ZERO


def settle_final_period(
    tenant: Tenant,
    periods: List[BillingPeriod],
    on: date,
    water_bill: Decimal,
    garbage_fee: Decimal,
    extra_charges: Decimal = ZERO,
    extra_description: str = "",
    reference: str = "",
) -> FinalPeriodOutcome:
    """
    Bill the exit month's utilities and pay them from held money.

    Rent for the exit month is already covered by the deposit. Overpay held on
    any ledger pays first, then the water deposit, then the rent deposit.

    Raises:
        PendingObligationsError: Uncleared billing periods exist
    """
    ensure_no_pending(periods, "settle the final period")
    for name, value in (("water_bill", water_bill), ("garbage_fee", garbage_fee), ("extra_charges", extra_charges)):
        if value < 0:
            raise ValidationError(f"{name} must be non-negative, got {value}")

    reference = reference or f"FINAL-{tenant.id}"
    year, month = on.year, month_name(on)
    period = find_period(periods, year, month)
    created = period is None
    if created:
        period = open_period(tenant.id, year, month, ZERO, ZERO, on, reference)
        periods.append(period)

    touched = [] if created else [period]
    for category, value in (
        (Category.WATER_BILL, water_bill),
        (Category.GARBAGE_FEE, garbage_fee),
        (Category.EXTRA_CHARGES, extra_charges),
    ):
        if value > 0:
            line = period.line(category)
            excess = rebill(line, line.expected + value, on, f"Final {category.value.replace('_', ' ')} of {quantize(value)} billed")
            add_overpay(period, excess, on, "Payment above final bill")
    if extra_description:
        period.extra_charges.title = extra_description
    refresh(period, on, reference, "Final period billed")

    pooled, donors = collect_overpay(periods, on, reference)
    touched.extend(donor for donor in donors if donor is not period)
    leftover = pooled
    if pooled > 0:
        leftover = apply_payment(period, pooled, on, reference, FINAL_PERIOD_ORDER, "Final bills paid from overpay").remainder

    ledger = tenant.deposits
    drawn = {WATER_DEPOSIT: ZERO, RENT_DEPOSIT: ZERO}
    for source in (WATER_DEPOSIT, RENT_DEPOSIT):
        available = ledger.available_water_deposit if source == WATER_DEPOSIT else ledger.available_rent_deposit
        if available <= 0 or period.is_cleared:
            continue
        outcome = apply_payment(period, available, on, reference, FINAL_PERIOD_ORDER, f"Final bills paid from {source.replace('_', ' ')}")
        drawn[source] = draw_deposit(ledger, source, outcome.applied, on, reference, "Applied to final period bills")

    add_overpay(period, leftover, on, "Overpay held after final bills")
    refresh(period, on, reference, "Final period settled from deposits")

    return FinalPeriodOutcome(
        period=period,
        created=created,
        touched=touched,
        from_overpay=quantize(pooled - leftover),
        from_water_deposit=drawn[WATER_DEPOSIT],
        from_rent_deposit=drawn[RENT_DEPOSIT],
    )


def is_eligible_for_removal(tenant: Tenant, periods: Sequence[BillingPeriod], clearance: Optional[Clearance]) -> bool:
    """Tenant flagged for clearance with no billing or clearance arrears"""
    if not tenant.to_be_cleared:
        return False
    if uncleared(periods):
        return False
    return clearance is None or clearance.is_cleared
