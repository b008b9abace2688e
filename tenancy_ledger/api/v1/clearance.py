"""Exit endpoints: final bills, clearance settlement, exit notice"""

from fastapi import APIRouter, BackgroundTasks, Depends, status

from tenancy_ledger.api.dependencies import get_ledger_service, get_notification_client
from tenancy_ledger.api.v1.schemas import (
    ClearanceUpdateRequest,
    ClearanceUpdateResponse,
    ExitNoticeRequest,
    ExitNoticeResponse,
    ExitSettlementRequest,
    FinalPeriodRequest,
    FinalPeriodResponse,
    RemovalEligibilityResponse,
)
from tenancy_ledger.domain.models import Clearance
from tenancy_ledger.infrastructure.clients.notifier import NotificationClient
from tenancy_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.post("/tenants/{tenant_id}/final-period", response_model=FinalPeriodResponse)
def settle_final_period(tenant_id: str, body: FinalPeriodRequest, service: LedgerService = Depends(get_ledger_service)):
    """Bill the exit month's utilities against overpay and deposits"""
    outcome = service.settle_final_period(
        tenant_id,
        water_bill=body.water_bill,
        on=body.payment_date,
        garbage_fee=body.garbage_fee,
        extra_charges=body.extra_charges,
        extra_description=body.extra_description,
        reference=body.reference_number,
    )
    period = outcome.period
    return FinalPeriodResponse(
        period=f"{period.month} {period.year}",
        from_overpay=outcome.from_overpay,
        from_water_deposit=outcome.from_water_deposit,
        from_rent_deposit=outcome.from_rent_deposit,
        global_deficit=period.global_deficit,
        is_cleared=period.is_cleared,
    )


@router.post("/tenants/{tenant_id}/clearance", response_model=Clearance, status_code=status.HTTP_201_CREATED)
def settle_exit(tenant_id: str, body: ExitSettlementRequest, service: LedgerService = Depends(get_ledger_service)):
    """Settle painting and miscellaneous exit fees from remaining deposits"""
    return service.settle_exit(
        tenant_id,
        exit_date=body.exit_date,
        painting_fee=body.painting_fee,
        miscellaneous=[(item.title, item.amount) for item in body.miscellaneous],
        reference=body.reference_number,
    )


@router.patch("/tenants/{tenant_id}/clearance", response_model=ClearanceUpdateResponse)
def update_clearance(tenant_id: str, body: ClearanceUpdateRequest, service: LedgerService = Depends(get_ledger_service)):
    outcome = service.update_clearance(
        tenant_id,
        amount=body.amount,
        reference=body.reference_number,
        on=body.payment_date,
        month=body.month,
        year=body.year,
    )
    clearance = outcome.clearance
    return ClearanceUpdateResponse(
        global_deficit=clearance.global_deficit,
        overpay=clearance.overpay,
        is_cleared=clearance.is_cleared,
        periods_touched=[f"{period.month} {period.year}" for period in outcome.touched],
    )


@router.get("/tenants/{tenant_id}/clearance", response_model=Clearance)
def get_clearance(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.clearance(tenant_id)


@router.post("/tenants/{tenant_id}/exit-notice", response_model=ExitNoticeResponse, status_code=status.HTTP_202_ACCEPTED)
def send_exit_notice(
    tenant_id: str,
    body: ExitNoticeRequest,
    background_tasks: BackgroundTasks,
    service: LedgerService = Depends(get_ledger_service),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Record the exit, restart the removal timer and email tenant and owner.

    Emails are sent after the response; delivery failures never touch ledgers.
    """
    notice = service.prepare_exit_notice(
        tenant_id,
        owner_email=body.owner_email,
        refund_amount=body.refund_amount,
        exit_date=body.exit_date,
    )
    background_tasks.add_task(notifier.send_exit_notice, notice.messages)
    return ExitNoticeResponse(
        tenant_id=notice.tenant_id,
        refund=notice.refund,
        removal_not_after=notice.removal_not_after.isoformat(),
        recipients=[message.to for message in notice.messages],
    )


@router.get("/tenants/{tenant_id}/removal-eligibility", response_model=RemovalEligibilityResponse)
def removal_eligibility(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return RemovalEligibilityResponse(tenant_id=tenant_id, eligible=service.is_eligible_for_removal(tenant_id))
