"""Tenant onboarding, deposits, house changes and removal endpoints"""

from typing import List
from fastapi import APIRouter, Depends, Response, status

from tenancy_ledger.api.dependencies import get_ledger_service
from tenancy_ledger.api.v1.schemas import DepositRequest, DepositResponse, HouseTermsUpdate, TenantCreate, TenantMove
from tenancy_ledger.domain.models import Tenant, TenantBalance
from tenancy_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.post("/tenants", response_model=Tenant, status_code=status.HTTP_201_CREATED)
def onboard_tenant(body: TenantCreate, service: LedgerService = Depends(get_ledger_service)):
    """
    Move a tenant into a vacant house.

    Responses: 404 unknown house, 409 house occupied, 400 duplicate national ID.
    """
    return service.onboard_tenant(
        name=body.name,
        email=body.email,
        phone=body.phone,
        national_id=body.national_id,
        apartment_id=body.apartment_id,
        floor=body.floor,
        house_name=body.house_name,
        placement_date=body.placement_date,
        garbage_fee=body.garbage_fee,
    )


@router.get("/tenants/incomplete-deposits", response_model=List[Tenant])
def tenants_with_incomplete_deposits(service: LedgerService = Depends(get_ledger_service)):
    return service.tenants_with_incomplete_deposits()


@router.get("/tenants/to-be-cleared", response_model=List[Tenant])
def tenants_to_be_cleared(service: LedgerService = Depends(get_ledger_service)):
    return service.tenants_to_be_cleared()


@router.get("/tenants/{tenant_id}", response_model=Tenant)
def get_tenant(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.tenant(tenant_id)


@router.get("/tenants/{tenant_id}/balance", response_model=TenantBalance)
def get_balance(tenant_id: str, service: LedgerService = Depends(get_ledger_service)):
    return service.tenant_balance(tenant_id)


@router.post("/tenants/{tenant_id}/deposits", response_model=DepositResponse)
def add_deposit(tenant_id: str, body: DepositRequest, service: LedgerService = Depends(get_ledger_service)):
    """Apply a deposit installment; completing deposits opens the first billing period"""
    outcome = service.add_deposit(tenant_id, body.amount, body.reference_number, body.payment_date)
    return DepositResponse(
        applied=outcome.applied,
        forwarded_to_billing=outcome.forward,
        excess_amount=outcome.excess_amount,
        deposits_cleared=outcome.cleared,
    )


@router.put("/tenants/{tenant_id}/house", response_model=Tenant)
def move_tenant(tenant_id: str, body: TenantMove, service: LedgerService = Depends(get_ledger_service)):
    return service.move_tenant(tenant_id, body.apartment_id, body.floor, body.house_name)


@router.patch("/tenants/{tenant_id}/terms", response_model=Tenant)
def update_house_terms(tenant_id: str, body: HouseTermsUpdate, service: LedgerService = Depends(get_ledger_service)):
    return service.update_house_terms(tenant_id, rent=body.rent, garbage_fee=body.garbage_fee)


@router.delete("/tenants/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_tenant(tenant_id: str, force: bool = False, service: LedgerService = Depends(get_ledger_service)):
    """Delete tenant and ledgers; 409 while payments are outstanding unless forced"""
    service.remove_tenant(tenant_id, force=force)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
