"""Pydantic request/response schemas for API validation"""

from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class FeeItemSchema(BaseModel):
    title: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)


class HouseCreate(BaseModel):
    """Request body for POST /v1/houses"""

    apartment_id: str = Field(..., min_length=1)
    floor: int = Field(..., ge=0)
    name: str = Field(..., min_length=1)
    rent_payable: Decimal = Field(Decimal("0"), ge=0)
    rent_deposit: Decimal = Field(Decimal("0"), ge=0)
    water_deposit: Decimal = Field(Decimal("0"), ge=0)
    months_used_for_rent_deposit: int = Field(1, ge=0)
    other_deposits: List[FeeItemSchema] = []


class TenantCreate(BaseModel):
    """Request body for POST /v1/tenants"""

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=1)
    national_id: str = Field(..., min_length=1)
    apartment_id: str = Field(..., min_length=1)
    floor: int = Field(..., ge=0)
    house_name: str = Field(..., min_length=1)
    placement_date: date
    garbage_fee: Optional[Decimal] = Field(None, ge=0)


class TenantMove(BaseModel):
    apartment_id: str = Field(..., min_length=1)
    floor: int = Field(..., ge=0)
    house_name: str = Field(..., min_length=1)


class HouseTermsUpdate(BaseModel):
    rent: Optional[Decimal] = Field(None, ge=0)
    garbage_fee: Optional[Decimal] = Field(None, ge=0)


class PaymentRequest(BaseModel):
    """Common payment fields"""

    amount: Decimal = Field(..., ge=0)
    reference_number: str = Field(..., min_length=1)
    payment_date: Optional[date] = None


class DepositRequest(PaymentRequest):
    """Request body for POST /v1/tenants/{id}/deposits"""


class ExtraPaymentRequest(PaymentRequest):
    """Request body for POST /v1/tenants/{id}/payments/extra"""


class MonthlyPaymentRequest(PaymentRequest):
    """Request body for POST /v1/tenants/{id}/payments/monthly"""

    month: Union[int, str]
    year: int = Field(..., ge=1900)
    previous_water_bill: Decimal = Field(Decimal("0"), ge=0)
    previous_extra_charges: Decimal = Field(Decimal("0"), ge=0)
    previous_extra_description: str = ""
    extra_charges: Decimal = Field(Decimal("0"), ge=0)
    extra_description: str = ""


class DeficitCorrectionRequest(BaseModel):
    """Request body for POST /v1/tenants/{id}/payments/corrections"""

    month: Union[int, str]
    year: int = Field(..., ge=1900)
    reference_number: str = Field(..., min_length=1)
    payment_date: Optional[date] = None
    rent_deficit: Optional[Decimal] = Field(None, ge=0)
    accumulated_water_bill: Optional[Decimal] = Field(None, ge=0)
    garbage_deficit: Optional[Decimal] = Field(None, ge=0)
    extra_charges_deficit: Optional[Decimal] = Field(None, ge=0)
    extra_description: str = ""


class FinalPeriodRequest(BaseModel):
    """Request body for POST /v1/tenants/{id}/final-period"""

    water_bill: Decimal = Field(..., ge=0)
    garbage_fee: Optional[Decimal] = Field(None, ge=0)
    extra_charges: Decimal = Field(Decimal("0"), ge=0)
    extra_description: str = ""
    reference_number: str = ""
    payment_date: Optional[date] = None


class ExitSettlementRequest(BaseModel):
    """Request body for POST /v1/tenants/{id}/clearance"""

    exit_date: date
    painting_fee: Decimal = Field(..., ge=0)
    miscellaneous: List[FeeItemSchema] = []
    reference_number: str = ""


class ClearanceUpdateRequest(PaymentRequest):
    """Request body for PATCH /v1/tenants/{id}/clearance"""

    month: Optional[Union[int, str]] = None
    year: Optional[int] = None


class ExitNoticeRequest(BaseModel):
    """Request body for POST /v1/tenants/{id}/exit-notice"""

    owner_email: Optional[str] = None
    refund_amount: Optional[Decimal] = Field(None, ge=0)
    exit_date: Optional[date] = None


class PaymentResponse(BaseModel):
    """Where a payment's money went"""

    amount: Decimal
    applied: Decimal
    overpay: Decimal
    periods_touched: List[str]
    current_period: Optional[str] = None


class DepositResponse(BaseModel):
    applied: Decimal
    forwarded_to_billing: Decimal
    excess_amount: Decimal
    deposits_cleared: bool


class CorrectionResponse(BaseModel):
    period: str
    from_own_overpay: Decimal
    from_donor: Decimal
    donor_period: Optional[str] = None
    global_deficit: Decimal


class FinalPeriodResponse(BaseModel):
    period: str
    from_overpay: Decimal
    from_water_deposit: Decimal
    from_rent_deposit: Decimal
    global_deficit: Decimal
    is_cleared: bool


class ClearanceUpdateResponse(BaseModel):
    global_deficit: Decimal
    overpay: Decimal
    is_cleared: bool
    periods_touched: List[str]


class ExitNoticeResponse(BaseModel):
    tenant_id: str
    refund: Decimal
    removal_not_after: str
    recipients: List[str]


class RemovalEligibilityResponse(BaseModel):
    tenant_id: str
    eligible: bool
