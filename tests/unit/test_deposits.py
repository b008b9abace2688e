"""Unit tests for the deposit allocation engine"""

import pytest
from datetime import date
from decimal import Decimal
from tenancy_ledger.domain.deposits import (
    RENT_DEPOSIT,
    WATER_DEPOSIT,
    allocate_deposit,
    draw_deposit,
    new_deposit_ledger,
    reprice_initial_rent,
)
from tenancy_ledger.domain.exceptions import ValidationError
from tenancy_ledger.domain.models import FeeItem, HouseTerms

ON = date(2024, 1, 5)


@pytest.fixture
def ledger(terms: HouseTerms):
    """Requires rent deposit 10,000, water 2,000, key 500 and initial rent 10,000"""
    return new_deposit_ledger(terms, ON)


def test_new_ledger_owes_every_requirement(ledger):
    assert ledger.is_cleared is False
    assert [line.expected for line in ledger.required_lines()] == [
        Decimal("10000.00"),
        Decimal("2000.00"),
        Decimal("500.00"),
        Decimal("10000.00"),
    ]


def test_zero_other_deposits_are_skipped():
    terms = HouseTerms(
        rent=Decimal("5000"),
        garbage_fee=Decimal("150"),
        rent_deposit=Decimal("5000"),
        water_deposit=Decimal("1000"),
        other_deposits=[FeeItem(title="Key", amount=Decimal("0")), FeeItem(title="Gate card", amount=Decimal("300"))],
    )
    ledger = new_deposit_ledger(terms, ON)
    assert [line.title for line in ledger.other_deposits] == ["Gate card"]


def test_installments_follow_priority(ledger):
    outcome = allocate_deposit(ledger, Decimal("12200.00"), ON, "DEP-1")

    assert ledger.rent_deposit.paid is True
    assert ledger.water_deposit.paid is True
    assert ledger.other_deposits[0].amount == Decimal("200.00")
    assert ledger.other_deposits[0].deficit == Decimal("300.00")
    assert ledger.initial_rent_payment.amount == Decimal("0.00")
    assert outcome.cleared is False
    assert outcome.forward == Decimal("0.00")
    assert ledger.deposit_history[-1].description == "Deposit #1: Total amount of 12200.00"


def test_completion_forwards_initial_rent_and_surplus(ledger):
    allocate_deposit(ledger, Decimal("12000.00"), ON, "DEP-1")

    outcome = allocate_deposit(ledger, Decimal("10650.00"), ON, "DEP-2")

    assert outcome.cleared is True
    assert ledger.is_cleared is True
    assert outcome.forward == Decimal("10150.00")
    assert ledger.excess_amount == Decimal("0.00")
    assert ledger.initial_rent_forwarded is True
    assert ledger.excess_history[-1].description == "Excess used up after payment creation"
    assert ledger.deposit_history[-1].description == "Deposit #2: Total amount of 10650.00"


def test_initial_rent_forwarded_only_once(ledger):
    allocate_deposit(ledger, Decimal("22500.00"), ON, "DEP-1")

    outcome = allocate_deposit(ledger, Decimal("300.00"), ON, "DEP-2")

    assert outcome.forward == Decimal("300.00")


def test_repriced_rent_surplus_is_held_then_drawn(ledger):
    allocate_deposit(ledger, Decimal("20000.00"), ON, "DEP-1")  # 7,500 towards initial rent

    moved = reprice_initial_rent(ledger, Decimal("6000.00"), ON)

    assert moved == Decimal("1500.00")
    assert ledger.excess_amount == Decimal("1500.00")
    assert ledger.is_cleared is True

    outcome = allocate_deposit(ledger, Decimal("0.00"), ON, "DEP-2")

    assert ledger.excess_amount == Decimal("0.00")
    assert outcome.forward == Decimal("7500.00")  # 6,000 rent + 1,500 held excess


def test_negative_deposit_raises(ledger):
    with pytest.raises(ValidationError):
        allocate_deposit(ledger, Decimal("-1"), ON, "DEP")


def test_draw_deposit_caps_at_available(ledger):
    allocate_deposit(ledger, Decimal("12000.00"), ON, "DEP-1")

    assert draw_deposit(ledger, WATER_DEPOSIT, Decimal("500"), ON, "X", "Final bills") == Decimal("500.00")
    assert draw_deposit(ledger, WATER_DEPOSIT, Decimal("5000"), ON, "X", "Final bills") == Decimal("1500.00")
    assert ledger.available_water_deposit == Decimal("0.00")
    assert ledger.available_rent_deposit == Decimal("10000.00")
    assert len(ledger.applications) == 2

    with pytest.raises(ValidationError):
        draw_deposit(ledger, "garbage", Decimal("1"), ON, "X", "Final bills")
    assert draw_deposit(ledger, RENT_DEPOSIT, Decimal("0"), ON, "X", "Final bills") == Decimal("0.00")
