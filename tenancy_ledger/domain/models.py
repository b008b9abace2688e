"""Domain models - pure Python dataclasses representing ledger entities"""

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from tenancy_ledger.domain.money import ZERO, clamp_non_negative, total


@dataclass
class Transaction:
    """Money applied to a charge line (or drawn from a deposit)"""

    amount: Decimal
    date: date
    reference_number: str
    description: str = ""


@dataclass
class DeficitEntry:
    """Outstanding balance snapshot after an event (not a delta)"""

    amount: Decimal
    date: date
    description: str


@dataclass
class ExcessEntry:
    """Overpay movement: balance before and the amount added (negative when drawn)"""

    initial_overpay: Decimal
    excess_amount: Decimal
    date: date
    description: str


@dataclass
class ReferenceEntry:
    """Payment reference used against a ledger and the amount it contributed"""

    date: date
    previous_reference_number: str
    reference_number: str
    amount: Decimal
    description: str = ""


@dataclass
class GlobalDeficitEntry:
    """Ledger-wide deficit snapshot plus the change that produced it"""

    year: int
    month: str
    total_deficit: Decimal
    change: Decimal
    date: date
    description: str


@dataclass
class GlobalTransactionEntry:
    """Per-category paid totals of a billing period after a payment event"""

    date: date
    reference_number: str
    rent: Decimal
    water_bill: Decimal
    garbage_fee: Decimal
    extra_charges: Decimal
    total: Decimal
    global_deficit: Decimal


@dataclass
class FeeItem:
    """Titled amount: a house's other deposit requirement or an exit fee"""

    title: str
    amount: Decimal


@dataclass
class ChargeLine:
    """
    One obligation with its expected amount, paid-to-date and deficit.

    Holds `amount + deficit == expected` and `paid == (deficit <= 0)` after
    every allocation step. The water bill line's `expected` is the accumulated
    (metered) water amount.
    """

    expected: Decimal = ZERO
    amount: Decimal = ZERO
    deficit: Decimal = ZERO
    paid: bool = True
    title: str = ""
    transactions: List[Transaction] = field(default_factory=list)
    deficit_history: List[DeficitEntry] = field(default_factory=list)

    @classmethod
    def billed(cls, expected: Decimal, on: date, description: str, title: str = "") -> "ChargeLine":
        """New line owing `expected` in full"""
        line = cls(expected=expected, amount=ZERO, deficit=expected, paid=expected <= 0, title=title)
        if expected > 0:
            line.deficit_history.append(DeficitEntry(amount=expected, date=on, description=description))
        return line

    @property
    def outstanding(self) -> Decimal:
        return clamp_non_negative(self.expected - self.amount)


class Category(str, enum.Enum):
    """Billing period charge lines, in house waterfall order"""

    RENT = "rent"
    WATER_BILL = "water_bill"
    GARBAGE_FEE = "garbage_fee"
    EXTRA_CHARGES = "extra_charges"


class PeriodStatus(str, enum.Enum):
    """Monthly processing state of a billing period"""

    NOT_STARTED = "not_started"
    PARTIALLY_PAID = "partially_paid"
    FULLY_CLEARED = "fully_cleared"
    DEFICIT_CARRIED = "deficit_carried"


@dataclass
class BillingPeriod:
    """Per-tenant ledger for one calendar month"""

    tenant_id: str
    year: int
    month: str
    rent: ChargeLine = field(default_factory=ChargeLine)
    water_bill: ChargeLine = field(default_factory=ChargeLine)
    garbage_fee: ChargeLine = field(default_factory=ChargeLine)
    extra_charges: ChargeLine = field(default_factory=ChargeLine)
    overpay: Decimal = ZERO
    global_deficit: Decimal = ZERO
    total_amount_paid: Decimal = ZERO
    is_cleared: bool = True
    carried_forward: bool = False
    reference_number: str = ""
    excess_history: List[ExcessEntry] = field(default_factory=list)
    global_deficit_history: List[GlobalDeficitEntry] = field(default_factory=list)
    global_transaction_history: List[GlobalTransactionEntry] = field(default_factory=list)
    reference_no_history: List[ReferenceEntry] = field(default_factory=list)

    def line(self, category: Category) -> ChargeLine:
        return getattr(self, Category(category).value)

    def lines(self) -> List[ChargeLine]:
        return [self.line(category) for category in Category]

    @property
    def accumulated_water_bill(self) -> Decimal:
        return self.water_bill.expected

    @property
    def status(self) -> PeriodStatus:
        if self.is_cleared:
            return PeriodStatus.FULLY_CLEARED
        if self.carried_forward:
            return PeriodStatus.DEFICIT_CARRIED
        if total(line.amount for line in self.lines()) > 0:
            return PeriodStatus.PARTIALLY_PAID
        return PeriodStatus.NOT_STARTED


@dataclass
class DepositLedger:
    """Onboarding deposits owed by a tenant before regular billing"""

    rent_deposit: ChargeLine = field(default_factory=ChargeLine)
    water_deposit: ChargeLine = field(default_factory=ChargeLine)
    initial_rent_payment: ChargeLine = field(default_factory=ChargeLine)
    other_deposits: List[ChargeLine] = field(default_factory=list)
    excess_amount: Decimal = ZERO
    excess_history: List[ExcessEntry] = field(default_factory=list)
    deposit_history: List[Transaction] = field(default_factory=list)
    # Deposit money later spent on final bills or refunded at exit
    rent_deposit_applied: Decimal = ZERO
    water_deposit_applied: Decimal = ZERO
    applications: List[Transaction] = field(default_factory=list)
    initial_rent_forwarded: bool = False
    reference_number: str = ""
    is_cleared: bool = False

    def required_lines(self) -> List[ChargeLine]:
        """Deposit lines in allocation priority order"""
        return [self.rent_deposit, self.water_deposit, *self.other_deposits, self.initial_rent_payment]

    @property
    def available_rent_deposit(self) -> Decimal:
        return clamp_non_negative(self.rent_deposit.amount - self.rent_deposit_applied)

    @property
    def available_water_deposit(self) -> Decimal:
        return clamp_non_negative(self.water_deposit.amount - self.water_deposit_applied)


@dataclass
class HouseTerms:
    """Billing terms copied from the house when the tenant moved in"""

    rent: Decimal
    garbage_fee: Decimal
    rent_deposit: Decimal
    water_deposit: Decimal
    other_deposits: List[FeeItem] = field(default_factory=list)


@dataclass
class House:
    """Rentable unit in the house registry"""

    id: str
    apartment_id: str
    floor: int
    name: str
    rent_payable: Decimal
    rent_deposit: Decimal
    water_deposit: Decimal
    months_used_for_rent_deposit: int = 1
    other_deposits: List[FeeItem] = field(default_factory=list)
    is_occupied: bool = False


@dataclass
class Tenant:
    """Tenant with house assignment and deposit ledger"""

    id: str
    name: str
    email: str
    phone: str
    national_id: str
    apartment_id: str
    house_id: str
    house_name: str
    floor: int
    placement_date: date
    house_terms: HouseTerms
    deposits: DepositLedger = field(default_factory=DepositLedger)
    to_be_cleared: bool = False
    exiting_date: Optional[date] = None


@dataclass
class Clearance:
    """Exit settlement ledger: painting fee then miscellaneous fees"""

    tenant_id: str
    year: int
    month: str
    exiting_date: date
    painting_fee: ChargeLine = field(default_factory=ChargeLine)
    miscellaneous: List[ChargeLine] = field(default_factory=list)
    overpay: Decimal = ZERO
    global_deficit: Decimal = ZERO
    total_amount_paid: Decimal = ZERO
    is_cleared: bool = True
    reference_number: str = ""
    transactions: List[Transaction] = field(default_factory=list)
    global_deficit_history: List[GlobalDeficitEntry] = field(default_factory=list)
    excess_history: List[ExcessEntry] = field(default_factory=list)
    reference_no_history: List[ReferenceEntry] = field(default_factory=list)

    def lines(self) -> List[ChargeLine]:
        """Exit fees in settlement order"""
        return [self.painting_fee, *self.miscellaneous]


@dataclass
class TenantBalance:
    """Read-side summary across a tenant's billing periods"""

    tenant_id: str
    total_deficit: Decimal
    total_overpay: Decimal
    total_paid: Decimal
    periods: int
    uncleared_periods: int
    deposits_cleared: bool
