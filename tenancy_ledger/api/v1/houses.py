"""House registry endpoints"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Response, status

from tenancy_ledger.api.dependencies import get_ledger_service
from tenancy_ledger.api.v1.schemas import HouseCreate
from tenancy_ledger.domain.models import House
from tenancy_ledger.services.ledger_service import LedgerService

router = APIRouter()


@router.post("/houses", response_model=House, status_code=status.HTTP_201_CREATED)
def register_house(body: HouseCreate, service: LedgerService = Depends(get_ledger_service)):
    """Register a vacant house; (apartment, floor, name) must be unique"""
    return service.register_house(
        apartment_id=body.apartment_id,
        floor=body.floor,
        name=body.name,
        rent_payable=body.rent_payable,
        rent_deposit=body.rent_deposit,
        water_deposit=body.water_deposit,
        months_used_for_rent_deposit=body.months_used_for_rent_deposit,
        other_deposits=[(item.title, item.amount) for item in body.other_deposits],
    )


@router.get("/houses", response_model=List[House])
def list_houses(
    apartment_id: Optional[str] = None,
    vacant_only: bool = False,
    service: LedgerService = Depends(get_ledger_service),
):
    return service.list_houses(apartment_id, vacant_only)


@router.delete("/houses/{house_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_house(house_id: str, service: LedgerService = Depends(get_ledger_service)):
    """Delete a house; refused while occupied"""
    service.delete_house(house_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
