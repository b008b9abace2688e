"""Unit tests for manual deficit corrections"""

import pytest
from datetime import date
from decimal import Decimal
from tenancy_ledger.domain.billing import add_overpay, apply_payment, carry_forward, open_period
from tenancy_ledger.domain.corrections import correct_deficits
from tenancy_ledger.domain.exceptions import ValidationError

ON = date(2024, 3, 20)


def _period(month: str, rent: str = "1000", garbage: str = "0", paid: str = "0"):
    period = open_period("tenant-1", 2024, month, Decimal(rent), Decimal(garbage), ON)
    apply_payment(period, Decimal(paid), ON, "PAID")
    return period


def test_rent_correction_sets_outstanding_deficit():
    march = _period("March", rent="10000", garbage="500", paid="8000")

    outcome = correct_deficits(march, [march], ON, "FIX-1", rent_deficit=Decimal("500"))

    assert march.rent.expected == Decimal("8500.00")
    assert march.rent.deficit == Decimal("500.00")
    assert march.global_deficit == Decimal("1000.00")
    assert march.global_deficit_history[-1].change == Decimal("-1500.00")
    assert outcome.touched == [march]
    assert outcome.donor is None


def test_water_correction_moves_excess_to_overpay():
    march = _period("March", rent="10000", garbage="500", paid="10500")
    carry_forward(march, Decimal("800"), Decimal("0"), ON, "WATER")
    apply_payment(march, Decimal("800"), ON, "WATER-PAID")

    correct_deficits(march, [march], ON, "FIX-2", accumulated_water_bill=Decimal("600"))

    assert march.accumulated_water_bill == Decimal("600.00")
    assert march.water_bill.amount == Decimal("600.00")
    assert march.overpay == Decimal("200.00")
    assert march.is_cleared is True


def test_own_overpay_pays_corrected_deficit_first():
    march = _period("March", paid="1000")
    add_overpay(march, Decimal("300"), ON, "Overpayment")

    outcome = correct_deficits(
        march, [march], ON, "FIX-3", garbage_deficit=Decimal("200")
    )

    assert march.garbage_fee.paid is True
    assert march.garbage_fee.amount == Decimal("200.00")
    assert march.overpay == Decimal("100.00")
    assert outcome.from_own_overpay == Decimal("200.00")
    assert outcome.from_donor == Decimal("0.00")


def test_donor_overpay_covers_remaining_deficit():
    february = _period("February", paid="1000")
    add_overpay(february, Decimal("700"), ON, "Overpayment")
    march = _period("March")

    outcome = correct_deficits(march, [february, march], ON, "FIX-4", rent_deficit=Decimal("500"))

    assert march.is_cleared is True
    assert outcome.donor is february
    assert outcome.from_donor == Decimal("500.00")
    assert february.overpay == Decimal("200.00")
    assert outcome.touched == [march, february]


def test_extra_charges_correction_and_title():
    march = _period("March", paid="1000")

    correct_deficits(march, [march], ON, "FIX-5", extra_charges_deficit=Decimal("250"), extra_description="Broken tap")

    assert march.extra_charges.title == "Broken tap"
    assert march.extra_charges.deficit == Decimal("250.00")
    assert march.is_cleared is False


def test_invalid_corrections():
    march = _period("March")
    with pytest.raises(ValidationError):
        correct_deficits(march, [march], ON, "", rent_deficit=Decimal("1"))
    with pytest.raises(ValidationError):
        correct_deficits(march, [march], ON, "FIX", garbage_deficit=Decimal("-1"))
