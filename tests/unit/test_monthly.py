"""Unit tests for billing periods and monthly processing"""

import pytest
from datetime import date
from decimal import Decimal
from tenancy_ledger.domain.billing import (
    CURRENT_PERIOD_ORDER,
    add_overpay,
    apply_payment,
    carry_forward,
    find_period,
    open_period,
)
from tenancy_ledger.domain.clearing import clear_across_periods
from tenancy_ledger.domain.exceptions import NotFoundError, ValidationError
from tenancy_ledger.domain.models import PeriodStatus, Tenant
from tenancy_ledger.domain.monthly import apply_extra_payment, process_month

ON = date(2024, 3, 5)


def _paid_period(tenant: Tenant, year: int, month: str):
    period = open_period(tenant.id, year, month, tenant.house_terms.rent, tenant.house_terms.garbage_fee, ON, "OPEN")
    apply_payment(period, period.global_deficit, ON, "PAID")
    return period


def test_open_period_owes_rent_and_garbage(domain_tenant: Tenant):
    period = open_period(domain_tenant.id, 2024, "march", Decimal("10000"), Decimal("500"), ON)

    assert period.month == "March"
    assert period.global_deficit == Decimal("10500.00")
    assert period.is_cleared is False
    assert period.status == PeriodStatus.NOT_STARTED


def test_scenario_overpay_on_rent_only_period():
    """Rent 10,000, no other charges, payment 12,000"""
    period = open_period("tenant-1", 2024, "March", Decimal("10000"), Decimal("0"), ON)

    result = apply_payment(period, Decimal("12000.00"), ON, "REF-A", CURRENT_PERIOD_ORDER)
    add_overpay(period, result.remainder, ON, "Overpayment")

    assert period.rent.amount == Decimal("10000.00")
    assert period.rent.deficit == Decimal("0.00")
    assert period.rent.paid is True
    assert period.overpay == Decimal("2000.00")
    assert period.is_cleared is True
    assert period.excess_history[-1].initial_overpay == Decimal("0.00")
    assert period.excess_history[-1].excess_amount == Decimal("2000.00")


def test_scenario_partial_garbage(domain_tenant: Tenant):
    """Rent 10,000 + garbage 500, payment 10,300"""
    periods = [_paid_period(domain_tenant, 2024, "February")]

    outcome = process_month(domain_tenant, periods, 2024, "March", Decimal("10300.00"), ON, "REF-B")

    march = outcome.current
    assert march.rent.paid is True
    assert march.garbage_fee.amount == Decimal("300.00")
    assert march.garbage_fee.deficit == Decimal("200.00")
    assert march.overpay == Decimal("0.00")
    assert march.global_deficit == Decimal("200.00")
    assert march.status == PeriodStatus.PARTIALLY_PAID
    assert outcome.created == [march]


def test_scenario_rent_paid_in_two_installments():
    """Rent 10,000 paid as 6,000 then 4,000"""
    period = open_period("tenant-1", 2024, "March", Decimal("10000"), Decimal("0"), ON)

    first = apply_payment(period, Decimal("6000.00"), ON, "REF-A1", CURRENT_PERIOD_ORDER)

    assert first.remainder == Decimal("0.00")
    assert period.rent.amount == Decimal("6000.00")
    assert period.rent.deficit == Decimal("4000.00")
    assert period.rent.paid is False
    assert period.is_cleared is False

    second = apply_payment(period, Decimal("4000.00"), ON, "REF-A2", CURRENT_PERIOD_ORDER)

    assert second.remainder == Decimal("0.00")
    assert period.rent.amount == Decimal("10000.00")
    assert period.rent.deficit == Decimal("0.00")
    assert period.rent.paid is True
    assert period.overpay == Decimal("0.00")
    assert period.is_cleared is True


def test_scenario_old_water_deficit_cleared_by_new_deposit(domain_tenant: Tenant):
    """Older period owes 1,000 water; a 1,500 deposit clears it and 500 reaches this cycle"""
    january = _paid_period(domain_tenant, 2024, "January")
    carry_forward(january, Decimal("1000.00"), Decimal("0"), ON, "WATER")
    march = open_period(domain_tenant.id, 2024, "March", Decimal("10000"), Decimal("500"), ON)

    clearing = clear_across_periods([march, january], Decimal("1500.00"), ON, "DEP-C", "deposit completion")

    assert january.water_bill.amount == Decimal("1000.00")
    assert january.water_bill.deficit == Decimal("0.00")
    assert january.is_cleared is True
    assert march.rent.amount == Decimal("500.00")
    assert march.rent.deficit == Decimal("9500.00")
    assert march.is_cleared is False
    assert clearing.remainder == Decimal("0.00")
    assert clearing.touched == [january, march]


def test_missing_previous_period_raises(domain_tenant: Tenant):
    with pytest.raises(NotFoundError):
        process_month(domain_tenant, [], 2024, "March", Decimal("10000"), ON, "REF")


def test_january_uses_december_of_previous_year(domain_tenant: Tenant):
    periods = [_paid_period(domain_tenant, 2023, "December")]

    outcome = process_month(domain_tenant, periods, 2024, "January", Decimal("10500"), ON, "REF")

    assert outcome.current.year == 2024
    assert outcome.current.month == "January"
    assert outcome.current.is_cleared is True


def test_invalid_month_and_negative_amount(domain_tenant: Tenant):
    periods = [_paid_period(domain_tenant, 2024, "February")]
    with pytest.raises(ValidationError):
        process_month(domain_tenant, periods, 2024, "Marchember", Decimal("1"), ON, "REF")
    with pytest.raises(ValidationError):
        process_month(domain_tenant, periods, 2024, "March", Decimal("-1"), ON, "REF")


def test_carry_forward_reopens_prior_period(domain_tenant: Tenant):
    february = _paid_period(domain_tenant, 2024, "February")

    carried = carry_forward(february, Decimal("800"), Decimal("250"), ON, "REF", "Broken window")

    assert carried is True
    assert february.accumulated_water_bill == Decimal("800.00")
    assert february.water_bill.deficit == Decimal("800.00")
    assert february.extra_charges.title == "Broken window"
    assert february.global_deficit == Decimal("1050.00")
    assert february.status == PeriodStatus.DEFICIT_CARRIED


def test_water_lags_one_cycle_and_is_paid_before_current_rent(domain_tenant: Tenant):
    """February's water arrives with March's payment and is cleared first"""
    periods = [_paid_period(domain_tenant, 2024, "February")]

    outcome = process_month(
        domain_tenant,
        periods,
        2024,
        "March",
        Decimal("10500.00"),
        ON,
        "REF-W",
        previous_water_bill=Decimal("800.00"),
    )

    february = find_period(periods, 2024, "February")
    march = outcome.current
    assert february.is_cleared is True
    assert february.water_bill.amount == Decimal("800.00")
    assert march.rent.amount == Decimal("9700.00")
    assert march.rent.deficit == Decimal("300.00")
    assert march.garbage_fee.amount == Decimal("0.00")
    assert march.water_bill.expected == Decimal("0.00")
    assert february in outcome.touched and march in outcome.touched


def test_held_overpay_pays_next_cycle(domain_tenant: Tenant):
    february = _paid_period(domain_tenant, 2024, "February")
    add_overpay(february, Decimal("2000.00"), ON, "Overpayment")

    outcome = process_month(domain_tenant, [february], 2024, "March", Decimal("8500.00"), ON, "REF")

    assert february.overpay == Decimal("0.00")
    assert outcome.current.is_cleared is True
    assert outcome.current.overpay == Decimal("0.00")
    assert outcome.applied == Decimal("10500.00")


def test_money_is_conserved(domain_tenant: Tenant):
    periods = [_paid_period(domain_tenant, 2024, "February")]

    outcome = process_month(
        domain_tenant, periods, 2024, "March", Decimal("13333.33"), ON, "REF", previous_water_bill=Decimal("900")
    )

    assert outcome.applied + outcome.overpay == Decimal("13333.33")
    assert outcome.overpay == Decimal("1933.33")
    assert outcome.current.overpay == Decimal("1933.33")


def test_extra_charges_billed_on_current_period(domain_tenant: Tenant):
    periods = [_paid_period(domain_tenant, 2024, "February")]

    outcome = process_month(
        domain_tenant,
        periods,
        2024,
        "March",
        Decimal("10700.00"),
        ON,
        "REF",
        extra_charges=Decimal("400.00"),
        extra_description="Gate remote",
    )

    extra = outcome.current.extra_charges
    assert extra.title == "Gate remote"
    assert extra.amount == Decimal("200.00")
    assert extra.deficit == Decimal("200.00")


def test_histories_are_append_only(domain_tenant: Tenant):
    periods = [_paid_period(domain_tenant, 2024, "February")]
    outcome = process_month(domain_tenant, periods, 2024, "March", Decimal("5000"), ON, "REF-1")
    march = outcome.current
    before = (
        list(march.rent.transactions),
        list(march.rent.deficit_history),
        list(march.global_deficit_history),
        list(march.reference_no_history),
    )

    apply_extra_payment(periods, Decimal("1000"), ON, "REF-2")

    after = (march.rent.transactions, march.rent.deficit_history, march.global_deficit_history, march.reference_no_history)
    for old, new in zip(before, after):
        assert new[: len(old)] == old
        assert len(new) > len(old)
    assert march.reference_no_history[-1].previous_reference_number == "REF-1"
    assert march.reference_no_history[-1].amount == Decimal("1000.00")


def test_extra_payment_leftover_goes_to_latest_period(domain_tenant: Tenant):
    february = _paid_period(domain_tenant, 2024, "February")
    march = _paid_period(domain_tenant, 2024, "March")

    outcome = apply_extra_payment([march, february], Decimal("750"), ON, "REF")

    assert outcome.applied == Decimal("0.00")
    assert march.overpay == Decimal("750.00")
    assert february.overpay == Decimal("0.00")


def test_extra_payment_without_periods_raises():
    with pytest.raises(NotFoundError):
        apply_extra_payment([], Decimal("100"), ON, "REF")
