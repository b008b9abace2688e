"""Monthly processing: carry forward, clear arrears, pay the current cycle"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List

from tenancy_ledger.domain.billing import (
    CURRENT_PERIOD_ORDER,
    add_overpay,
    apply_payment,
    bill_extra_charges,
    carry_forward,
    collect_overpay,
    find_period,
    latest_period,
    open_period,
)
from tenancy_ledger.domain.clearing import clear_across_periods
from tenancy_ledger.domain.exceptions import NotFoundError, ValidationError
from tenancy_ledger.domain.models import BillingPeriod, Tenant
from tenancy_ledger.domain.money import ZERO, quantize
from tenancy_ledger.utils.date_utils import normalize_month, period_key, previous_period


@dataclass
class PaymentOutcome:
    """What a payment event did to a tenant's ledgers"""

    amount: Decimal
    applied: Decimal
    overpay: Decimal
    touched: List[BillingPeriod] = field(default_factory=list)
    created: List[BillingPeriod] = field(default_factory=list)
    current: BillingPeriod | None = None


def _mark(touched: List[BillingPeriod], *periods: BillingPeriod) -> None:
    for period in periods:
        if all(period is not seen for seen in touched):
            touched.append(period)


def process_month(
    tenant: Tenant,
    periods: List[BillingPeriod],
    year: int,
    month: str,
    amount: Decimal,
    on: date,
    reference: str,
    previous_water_bill: Decimal = ZERO,
    previous_extra_charges: Decimal = ZERO,
    previous_extra_description: str = "",
    extra_charges: Decimal = ZERO,
    extra_description: str = "",
) -> PaymentOutcome:
    """
    Process a tenant's payment for a billing cycle.

    Flow:
    1. Fold last cycle's water bill and extra charges into the prior ledger
    2. Pool overpay already held on any ledger with the new amount
    3. Clear uncleared periods older than this cycle, oldest first
    4. Pay this cycle: rent, garbage fee, extra charges
    5. Keep whatever is left as overpay on the most recent ledger

    Raises:
        ValidationError: Negative amount or unknown month
        NotFoundError: No ledger exists for the preceding cycle
    """
    if amount < 0:
        raise ValidationError(f"Payment amount must be non-negative, got {amount}")
    month = normalize_month(month)
    reference = reference or ""
    label = f"{month} {year}"

    # 1. Carry forward into the prior ledger
    prior_year, prior_month = previous_period(year, month)
    prior = find_period(periods, prior_year, prior_month)
    if prior is None:
        raise NotFoundError(f"No payment record found for this tenant for {prior_month} {prior_year}")

    touched: List[BillingPeriod] = []
    if carry_forward(prior, previous_water_bill, previous_extra_charges, on, reference, previous_extra_description):
        _mark(touched, prior)

    # 2. Pool held overpay
    pooled, donors = collect_overpay(periods, on, reference)
    _mark(touched, *donors)
    funds = quantize(amount + pooled)

    # 3. Older arrears first
    current = find_period(periods, year, month)
    created: List[BillingPeriod] = []
    if current is None:
        current = open_period(
            tenant.id, year, month, tenant.house_terms.rent, tenant.house_terms.garbage_fee, on, reference
        )
        periods.append(current)
        created.append(current)

    older = [period for period in periods if period_key(period.year, period.month) < period_key(year, month)]
    clearing = clear_across_periods(older, funds, on, reference, label)
    _mark(touched, *clearing.touched)

    # 4. This cycle
    bill_extra_charges(current, extra_charges, on, reference, extra_description)
    result = apply_payment(current, clearing.remainder, on, reference, CURRENT_PERIOD_ORDER, f"Payment for {label}")
    _mark(touched, current)

    # 5. Surplus
    newest = latest_period(periods)
    if result.remainder > 0:
        add_overpay(newest, result.remainder, on, f"Overpayment from payment {reference}")
        _mark(touched, newest)

    return PaymentOutcome(
        amount=quantize(amount),
        applied=quantize(clearing.applied + result.applied),
        overpay=result.remainder,
        touched=touched,
        created=created,
        current=current,
    )


def apply_extra_payment(
    periods: List[BillingPeriod],
    amount: Decimal,
    on: date,
    reference: str,
) -> PaymentOutcome:
    """
    Apply an ad-hoc payment to arrears across all cycles.

    Leftover money becomes overpay on the most recent ledger.

    Raises:
        NotFoundError: Tenant has no billing periods yet
    """
    if amount < 0:
        raise ValidationError(f"Payment amount must be non-negative, got {amount}")
    newest = latest_period(periods)
    if newest is None:
        raise NotFoundError("No payment record found for this tenant")

    touched: List[BillingPeriod] = []
    pooled, donors = collect_overpay(periods, on, reference)
    _mark(touched, *donors)

    clearing = clear_across_periods(periods, quantize(amount + pooled), on, reference, "extra payment")
    _mark(touched, *clearing.touched)

    if clearing.remainder > 0:
        add_overpay(newest, clearing.remainder, on, f"Excess from extra payment {reference}")
        _mark(touched, newest)

    return PaymentOutcome(
        amount=quantize(amount),
        applied=clearing.applied,
        overpay=clearing.remainder,
        touched=touched,
        current=newest,
    )
