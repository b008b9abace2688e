"""Allocation waterfall: apply money to charge lines in priority order"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Sequence

from tenancy_ledger.domain.exceptions import InvariantViolation, ValidationError
from tenancy_ledger.domain.models import ChargeLine, DeficitEntry, ExcessEntry, Transaction
from tenancy_ledger.domain.money import ZERO, quantize


class Allocation(NamedTuple):
    """Result of allocating money to one charge line"""

    line: ChargeLine
    applied: Decimal
    remainder: Decimal


@dataclass
class WaterfallResult:
    """Result of walking a priority list of charge lines"""

    applied: Decimal
    remainder: Decimal
    allocations: List[Allocation]


def check_line(line: ChargeLine, label: str = "charge line") -> None:
    """
    Verify the charge line invariant.

    Raises:
        InvariantViolation: Negative deficit, overpaid line or amount + deficit != expected
    """
    if line.deficit < 0:
        raise InvariantViolation(f"{label}: negative deficit {line.deficit}")
    if line.amount > line.expected:
        raise InvariantViolation(f"{label}: amount {line.amount} exceeds expected {line.expected}")
    if quantize(line.amount + line.deficit) != quantize(line.expected):
        raise InvariantViolation(
            f"{label}: amount {line.amount} + deficit {line.deficit} != expected {line.expected}"
        )
    if line.paid != (line.deficit <= 0):
        raise InvariantViolation(f"{label}: paid flag out of sync with deficit {line.deficit}")


def allocate(line: ChargeLine, amount: Decimal, on: date, reference: str, label: str) -> Allocation:
    """
    Apply up to `amount` to a single charge line.

    Args:
        line: Charge line, mutated in place
        amount: Money offered to the line
        on: Payment date recorded in history
        reference: Payment reference number
        label: Human-readable line name used in history descriptions

    Returns:
        Allocation with the amount applied and the unused remainder

    Raises:
        ValidationError: Negative amount
        InvariantViolation: Line arithmetic broken before or after the step

    Example:
        >>> rent = ChargeLine.billed(Decimal("10000.00"), on, "Rent due")
        >>> allocate(rent, Decimal("10300.00"), on, "REF1", "Rent").remainder
        Decimal('300.00')
    """
    if amount < 0:
        raise ValidationError(f"{label}: allocation amount must be non-negative, got {amount}")
    amount = quantize(amount)
    if amount == 0:
        return Allocation(line, ZERO, ZERO)

    check_line(line, label)

    due = line.outstanding
    applied = min(amount, due)
    line.amount = quantize(line.amount + applied)
    line.deficit = quantize(due - applied)
    line.paid = line.deficit <= 0

    if applied > 0:
        line.transactions.append(
            Transaction(amount=applied, date=on, reference_number=reference, description=f"{label} payment")
        )

    if due == 0:
        description = f"{label}: no outstanding deficit"
    elif line.deficit == 0:
        description = f"{label} deficit cleared"
    else:
        description = f"{label} partially paid, deficit {line.deficit} remaining"
    line.deficit_history.append(DeficitEntry(amount=line.deficit, date=on, description=description))

    check_line(line, label)
    return Allocation(line, applied, quantize(amount - applied))


def allocate_in_order(
    lines: Sequence[ChargeLine],
    labels: Sequence[str],
    amount: Decimal,
    on: date,
    reference: str,
) -> WaterfallResult:
    """Walk lines in priority order; settled lines are passed over"""
    remainder = quantize(amount)
    if remainder < 0:
        raise ValidationError(f"Allocation amount must be non-negative, got {amount}")

    allocations: List[Allocation] = []
    applied = ZERO
    for line, label in zip(lines, labels):
        if remainder <= 0:
            break
        if line.paid:
            continue
        allocation = allocate(line, remainder, on, reference, label)
        allocations.append(allocation)
        applied += allocation.applied
        remainder = allocation.remainder

    return WaterfallResult(applied=quantize(applied), remainder=remainder, allocations=allocations)


def rebill(line: ChargeLine, expected: Decimal, on: date, description: str) -> Decimal:
    """
    Change what a line is expected to collect.

    Returns the paid amount that no longer fits under the new expectation;
    the caller routes it to overpay.
    """
    if expected < 0:
        raise ValidationError(f"{description}: expected amount must be non-negative, got {expected}")
    expected = quantize(expected)
    excess = quantize(max(line.amount - expected, ZERO))
    line.expected = expected
    line.amount = quantize(line.amount - excess)
    line.deficit = quantize(expected - line.amount)
    line.paid = line.deficit <= 0
    line.deficit_history.append(DeficitEntry(amount=line.deficit, date=on, description=description))
    check_line(line, description)
    return excess


def excess_entry(balance_before: Decimal, change: Decimal, on: date, description: str) -> ExcessEntry:
    """Audit entry for an overpay or excess balance movement"""
    return ExcessEntry(
        initial_overpay=quantize(balance_before),
        excess_amount=quantize(change),
        date=on,
        description=description,
    )
