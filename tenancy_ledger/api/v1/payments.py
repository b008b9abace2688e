"""Billing period payment endpoints"""

from typing import List
from fastapi import APIRouter, Depends

from tenancy_ledger.api.dependencies import get_ledger_service
from tenancy_ledger.api.v1.schemas import (
    CorrectionResponse,
    DeficitCorrectionRequest,
    ExtraPaymentRequest,
    MonthlyPaymentRequest,
    PaymentResponse,
)
from tenancy_ledger.domain.models import BillingPeriod
from tenancy_ledger.domain.monthly import PaymentOutcome
from tenancy_ledger.services.ledger_service import LedgerService

router = APIRouter()


def _label(period: BillingPeriod) -> str:
    return f"{period.month} {period.year}"


def _payment_response(outcome: PaymentOutcome) -> PaymentResponse:
    return PaymentResponse(
        amount=outcome.amount,
        applied=outcome.applied,
        overpay=outcome.overpay,
        periods_touched=[_label(period) for period in outcome.touched],
        current_period=_label(outcome.current) if outcome.current is not None else None,
    )


@router.post("/tenants/{tenant_id}/payments/monthly", response_model=PaymentResponse)
def process_monthly_payment(
    tenant_id: str,
    body: MonthlyPaymentRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """
    Process a monthly payment.

    Flow:
    1. Fold last cycle's water bill and extra charges into the previous period
    2. Clear older arrears, oldest first
    3. Pay this cycle's rent, garbage fee and extra charges
    4. Hold any surplus as overpay
    """
    outcome = service.process_month(
        tenant_id,
        month=body.month,
        year=body.year,
        amount=body.amount,
        reference=body.reference_number,
        on=body.payment_date,
        previous_water_bill=body.previous_water_bill,
        previous_extra_charges=body.previous_extra_charges,
        previous_extra_description=body.previous_extra_description,
        extra_charges=body.extra_charges,
        extra_description=body.extra_description,
    )
    return _payment_response(outcome)


@router.post("/tenants/{tenant_id}/payments/extra", response_model=PaymentResponse)
def apply_extra_payment(tenant_id: str, body: ExtraPaymentRequest, service: LedgerService = Depends(get_ledger_service)):
    """Apply an ad-hoc payment to arrears across all periods"""
    outcome = service.apply_extra_payment(tenant_id, body.amount, body.reference_number, body.payment_date)
    return _payment_response(outcome)


@router.post("/tenants/{tenant_id}/payments/corrections", response_model=CorrectionResponse)
def correct_deficits(
    tenant_id: str,
    body: DeficitCorrectionRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Correct a period's deficits and re-apply held overpay"""
    outcome = service.correct_deficits(
        tenant_id,
        year=body.year,
        month=body.month,
        reference=body.reference_number,
        on=body.payment_date,
        rent_deficit=body.rent_deficit,
        accumulated_water_bill=body.accumulated_water_bill,
        garbage_deficit=body.garbage_deficit,
        extra_charges_deficit=body.extra_charges_deficit,
        extra_description=body.extra_description,
    )
    return CorrectionResponse(
        period=_label(outcome.period),
        from_own_overpay=outcome.from_own_overpay,
        from_donor=outcome.from_donor,
        donor_period=_label(outcome.donor) if outcome.donor is not None else None,
        global_deficit=outcome.period.global_deficit,
    )


@router.get("/tenants/{tenant_id}/payments", response_model=List[BillingPeriod])
def list_periods(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.tenant_periods(tenant_id)


@router.get("/tenants/{tenant_id}/payments/unpaid", response_model=List[BillingPeriod])
def unpaid_periods(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.unpaid_periods(tenant_id)


@router.get("/tenants/{tenant_id}/payments/cleared", response_model=List[BillingPeriod])
def cleared_periods(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.cleared_periods(tenant_id)


@router.get("/tenants/{tenant_id}/payments/{year}/{month}", response_model=BillingPeriod)
def get_period(tenant_id: str, year: int, month: str, service: LedgerService = Depends(get_ledger_service)):
    return service.period(tenant_id, year, month)
