"""Deposit allocation engine for tenant onboarding"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from tenancy_ledger.domain.exceptions import ValidationError
from tenancy_ledger.domain.models import ChargeLine, DepositLedger, HouseTerms, Transaction
from tenancy_ledger.domain.money import ZERO, quantize
from tenancy_ledger.domain.waterfall import allocate_in_order, excess_entry, rebill

RENT_DEPOSIT = "rent_deposit"
WATER_DEPOSIT = "water_deposit"


@dataclass
class DepositOutcome:
    """Result of one deposit installment"""

    applied: Decimal
    forward: Decimal
    excess_amount: Decimal
    cleared: bool


def new_deposit_ledger(terms: HouseTerms, on: date) -> DepositLedger:
    """Deposit ledger owing every requirement of the house in full"""
    ledger = DepositLedger(
        rent_deposit=ChargeLine.billed(quantize(terms.rent_deposit), on, "Rent deposit due"),
        water_deposit=ChargeLine.billed(quantize(terms.water_deposit), on, "Water deposit due"),
        initial_rent_payment=ChargeLine.billed(quantize(terms.rent), on, "Initial rent payment due"),
        other_deposits=[
            ChargeLine.billed(quantize(item.amount), on, f"{item.title} deposit due", title=item.title)
            for item in terms.other_deposits
            if item.amount > 0
        ],
    )
    ledger.is_cleared = all(line.paid for line in ledger.required_lines())
    return ledger


def _labels(ledger: DepositLedger) -> List[str]:
    return [
        "Rent deposit",
        "Water deposit",
        *[f"{line.title} deposit" for line in ledger.other_deposits],
        "Initial rent payment",
    ]


def allocate_deposit(ledger: DepositLedger, amount: Decimal, on: date, reference: str) -> DepositOutcome:
    """
    Apply one deposit installment.

    Priority: rent deposit, water deposit, other deposits in declaration order,
    then the initial rent payment. Excess held on the ledger (see
    `reprice_initial_rent`) is drawn into the installment first.

    Once the ledger is cleared, the initial rent payment (only the first
    time) plus the surplus is returned as `forward`: the caller pays it into
    the tenant's billing periods.

    Args:
        ledger: Tenant deposit ledger, mutated in place
        amount: Installment amount
        on: Payment date
        reference: Payment reference number

    Returns:
        DepositOutcome
    """
    if amount < 0:
        raise ValidationError(f"Deposit amount must be non-negative, got {amount}")
    amount = quantize(amount)

    count = len(ledger.deposit_history) + 1
    ledger.deposit_history.append(
        Transaction(amount=amount, date=on, reference_number=reference, description=f"Deposit #{count}: Total amount of {amount}")
    )
    ledger.reference_number = reference

    funds = amount
    if ledger.excess_amount > 0:
        ledger.excess_history.append(
            excess_entry(ledger.excess_amount, -ledger.excess_amount, on, "Held excess drawn to cover outstanding deposits")
        )
        funds = quantize(funds + ledger.excess_amount)
        ledger.excess_amount = ZERO

    result = allocate_in_order(ledger.required_lines(), _labels(ledger), funds, on, reference)
    ledger.is_cleared = all(line.paid for line in ledger.required_lines())

    forward = ZERO
    if ledger.is_cleared:
        if not ledger.initial_rent_forwarded:
            forward += ledger.initial_rent_payment.amount
            ledger.initial_rent_forwarded = True
        if result.remainder > 0:
            ledger.excess_history.append(excess_entry(ZERO, result.remainder, on, "Excess recorded"))
            ledger.excess_history.append(
                excess_entry(result.remainder, -result.remainder, on, "Excess used up after payment creation")
            )
            forward += result.remainder

    return DepositOutcome(
        applied=result.applied,
        forward=quantize(forward),
        excess_amount=ledger.excess_amount,
        cleared=ledger.is_cleared,
    )


def draw_deposit(ledger: DepositLedger, source: str, amount: Decimal, on: date, reference: str, description: str) -> Decimal:
    """
    Spend held deposit money (final bills or exit settlement).

    Returns:
        Amount actually drawn, capped at what is still available
    """
    if amount < 0:
        raise ValidationError(f"Deposit draw must be non-negative, got {amount}")
    if source == RENT_DEPOSIT:
        drawn = min(quantize(amount), ledger.available_rent_deposit)
        ledger.rent_deposit_applied = quantize(ledger.rent_deposit_applied + drawn)
    elif source == WATER_DEPOSIT:
        drawn = min(quantize(amount), ledger.available_water_deposit)
        ledger.water_deposit_applied = quantize(ledger.water_deposit_applied + drawn)
    else:
        raise ValidationError(f"Unknown deposit source: {source}")

    if drawn > 0:
        ledger.applications.append(
            Transaction(amount=drawn, date=on, reference_number=reference, description=f"{description} ({source})")
        )
    return drawn


def reprice_initial_rent(ledger: DepositLedger, rent: Decimal, on: date) -> Decimal:
    """
    Change the initial rent requirement before it has been forwarded.

    Money already paid above the new requirement is held as `excess_amount`
    and drawn into the next installment.

    Returns:
        Amount moved to excess
    """
    if ledger.initial_rent_forwarded:
        return ZERO
    excess = rebill(ledger.initial_rent_payment, rent, on, f"Initial rent payment repriced to {quantize(rent)}")
    if excess > 0:
        ledger.excess_history.append(excess_entry(ledger.excess_amount, excess, on, "Initial rent paid above new rent"))
        ledger.excess_amount = quantize(ledger.excess_amount + excess)
    ledger.is_cleared = all(line.paid for line in ledger.required_lines())
    return excess
