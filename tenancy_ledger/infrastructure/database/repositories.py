"""Data access layer for houses, tenants and ledgers"""

from typing import Any, List, Optional

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from tenancy_ledger.domain.exceptions import HouseOccupiedError, NotFoundError, ValidationError
from tenancy_ledger.domain.models import (
    BillingPeriod,
    Clearance,
    DepositLedger,
    FeeItem,
    House,
    HouseTerms,
    Tenant,
)
from tenancy_ledger.infrastructure.database.models import (
    BillingPeriodRecord,
    ClearanceRecord,
    HouseRecord,
    TenantRecord,
)
from tenancy_ledger.utils.date_utils import month_index, normalize_month, period_key

# Ledgers are stored as JSON documents; Decimals round-trip as strings
period_adapter = TypeAdapter(BillingPeriod)
deposits_adapter = TypeAdapter(DepositLedger)
terms_adapter = TypeAdapter(HouseTerms)
fee_items_adapter = TypeAdapter(List[FeeItem])
clearance_adapter = TypeAdapter(Clearance)


def _dump(adapter: TypeAdapter, value: Any) -> Any:
    return adapter.dump_python(value, mode="json")


class HouseRepository:
    """House registry: registration, lookup and the occupancy gate"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: HouseRecord) -> House:
        return House(
            id=record.id,
            apartment_id=record.apartment_id,
            floor=record.floor,
            name=record.name,
            rent_payable=record.rent_payable,
            rent_deposit=record.rent_deposit,
            water_deposit=record.water_deposit,
            months_used_for_rent_deposit=record.months_used_for_rent_deposit,
            other_deposits=fee_items_adapter.validate_python(record.other_deposits or []),
            is_occupied=record.is_occupied,
        )

    def _record(self, house_id: str) -> HouseRecord:
        record = self.db.get(HouseRecord, house_id)
        if record is None:
            raise NotFoundError(f"House {house_id} not found")
        return record

    def register(self, house: House) -> House:
        """Persist a new house; (apartment, floor, name) must be unique"""
        duplicate = (
            self.db.query(HouseRecord)
            .filter(
                HouseRecord.apartment_id == house.apartment_id,
                HouseRecord.floor == house.floor,
                HouseRecord.name == house.name,
            )
            .first()
        )
        if duplicate is not None:
            raise ValidationError(
                f"House {house.name} on floor {house.floor} already exists in apartment {house.apartment_id}"
            )
        record = HouseRecord(
            apartment_id=house.apartment_id,
            floor=house.floor,
            name=house.name,
            rent_payable=house.rent_payable,
            rent_deposit=house.rent_deposit,
            water_deposit=house.water_deposit,
            months_used_for_rent_deposit=house.months_used_for_rent_deposit,
            other_deposits=_dump(fee_items_adapter, house.other_deposits),
            is_occupied=False,
        )
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return self.to_domain(record)

    def get(self, house_id: str) -> House:
        return self.to_domain(self._record(house_id))

    def find_available_house(self, apartment_id: str, floor: int, name: str) -> House:
        """
        Locate a vacant house by location.

        Raises:
            NotFoundError: No such house in the apartment
            HouseOccupiedError: House is already taken
        """
        record = (
            self.db.query(HouseRecord)
            .filter(
                HouseRecord.apartment_id == apartment_id,
                HouseRecord.floor == floor,
                HouseRecord.name == name,
            )
            .first()
        )
        if record is None:
            raise NotFoundError(f"House {name} on floor {floor} not found in apartment {apartment_id}")
        if record.is_occupied:
            raise HouseOccupiedError(f"House {name} on floor {floor} is already occupied")
        return self.to_domain(record)

    def set_occupied(self, house_id: str, occupied: bool) -> None:
        self._record(house_id).is_occupied = occupied

    def list_houses(self, apartment_id: Optional[str] = None, vacant_only: bool = False) -> List[House]:
        query = self.db.query(HouseRecord)
        if apartment_id is not None:
            query = query.filter(HouseRecord.apartment_id == apartment_id)
        if vacant_only:
            query = query.filter(HouseRecord.is_occupied.is_(False))
        records = query.order_by(HouseRecord.apartment_id, HouseRecord.floor, HouseRecord.name).all()
        return [self.to_domain(record) for record in records]

    def delete(self, house_id: str) -> None:
        """Remove a house; blocked while any tenant references it"""
        record = self._record(house_id)
        in_use = self.db.query(TenantRecord.id).filter(TenantRecord.house_id == house_id).first()
        if record.is_occupied or in_use is not None:
            raise ValidationError(f"House {record.name} is occupied and cannot be deleted")
        self.db.delete(record)


class TenantRepository:
    """Repository for tenants and their deposit ledgers"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_domain(record: TenantRecord) -> Tenant:
        return Tenant(
            id=record.id,
            name=record.name,
            email=record.email,
            phone=record.phone,
            national_id=record.national_id,
            apartment_id=record.apartment_id,
            house_id=record.house_id,
            house_name=record.house_name,
            floor=record.floor,
            placement_date=record.placement_date,
            house_terms=terms_adapter.validate_python(record.house_terms),
            deposits=deposits_adapter.validate_python(record.deposits),
            to_be_cleared=record.to_be_cleared,
            exiting_date=record.exiting_date,
        )

    def _record(self, tenant_id: str) -> TenantRecord:
        record = self.db.get(TenantRecord, tenant_id)
        if record is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return record

    def national_id_taken(self, national_id: str) -> bool:
        return self.db.query(TenantRecord.id).filter(TenantRecord.national_id == national_id).first() is not None

    def add(self, tenant: Tenant) -> Tenant:
        record = TenantRecord(
            name=tenant.name,
            email=tenant.email,
            phone=tenant.phone,
            national_id=tenant.national_id,
            apartment_id=tenant.apartment_id,
            house_id=tenant.house_id,
            house_name=tenant.house_name,
            floor=tenant.floor,
            placement_date=tenant.placement_date,
            house_terms=_dump(terms_adapter, tenant.house_terms),
            deposits=_dump(deposits_adapter, tenant.deposits),
            deposits_cleared=tenant.deposits.is_cleared,
            to_be_cleared=tenant.to_be_cleared,
            exiting_date=tenant.exiting_date,
        )
        self.db.add(record)
        self.db.flush()
        tenant.id = record.id
        return tenant

    def get(self, tenant_id: str) -> Tenant:
        return self.to_domain(self._record(tenant_id))

    def save(self, tenant: Tenant) -> None:
        record = self._record(tenant.id)
        record.email = tenant.email
        record.phone = tenant.phone
        record.apartment_id = tenant.apartment_id
        record.house_id = tenant.house_id
        record.house_name = tenant.house_name
        record.floor = tenant.floor
        record.house_terms = _dump(terms_adapter, tenant.house_terms)
        record.deposits = _dump(deposits_adapter, tenant.deposits)
        record.deposits_cleared = tenant.deposits.is_cleared
        record.to_be_cleared = tenant.to_be_cleared
        record.exiting_date = tenant.exiting_date

    def delete(self, tenant_id: str) -> None:
        """Delete tenant; billing periods and clearance cascade"""
        self.db.delete(self._record(tenant_id))

    def with_incomplete_deposits(self) -> List[Tenant]:
        records = self.db.query(TenantRecord).filter(TenantRecord.deposits_cleared.is_(False)).all()
        return [self.to_domain(record) for record in records]

    def to_be_cleared(self) -> List[Tenant]:
        records = self.db.query(TenantRecord).filter(TenantRecord.to_be_cleared.is_(True)).all()
        return [self.to_domain(record) for record in records]


class BillingPeriodRepository:
    """Repository for monthly billing period ledgers"""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, tenant_id: str, year: int, month: str) -> Optional[BillingPeriodRecord]:
        return (
            self.db.query(BillingPeriodRecord)
            .filter(
                BillingPeriodRecord.tenant_id == tenant_id,
                BillingPeriodRecord.year == year,
                BillingPeriodRecord.month == normalize_month(month),
            )
            .first()
        )

    def for_tenant(self, tenant_id: str) -> List[BillingPeriod]:
        """All periods of a tenant, oldest first"""
        records = (
            self.db.query(BillingPeriodRecord)
            .filter(BillingPeriodRecord.tenant_id == tenant_id)
            .order_by(BillingPeriodRecord.year, BillingPeriodRecord.month_index)
            .all()
        )
        return [period_adapter.validate_python(record.ledger) for record in records]

    def get(self, tenant_id: str, year: int, month: str) -> BillingPeriod:
        record = self._find(tenant_id, year, month)
        if record is None:
            raise NotFoundError(f"No payment record found for {normalize_month(month)} {year}")
        return period_adapter.validate_python(record.ledger)

    def uncleared(self, tenant_id: str) -> List[BillingPeriod]:
        return [period for period in self.for_tenant(tenant_id) if not period.is_cleared]

    def cleared(self, tenant_id: str) -> List[BillingPeriod]:
        return [period for period in self.for_tenant(tenant_id) if period.is_cleared]

    def save(self, period: BillingPeriod) -> None:
        """Insert or update the (tenant, year, month) ledger"""
        record = self._find(period.tenant_id, period.year, period.month)
        if record is None:
            record = BillingPeriodRecord(
                tenant_id=period.tenant_id,
                year=period.year,
                month=period.month,
                month_index=month_index(period.month),
            )
            self.db.add(record)
        record.is_cleared = period.is_cleared
        record.global_deficit = period.global_deficit
        record.overpay = period.overpay
        record.ledger = _dump(period_adapter, period)

    def save_all(self, periods: List[BillingPeriod]) -> None:
        # One write per (tenant, year, month); pending inserts are not visible to _find
        unique = {(p.tenant_id, p.year, normalize_month(p.month)): p for p in periods}
        for period in sorted(unique.values(), key=lambda p: period_key(p.year, p.month)):
            self.save(period)
        self.db.flush()


class ClearanceRepository:
    """Repository for exit clearance ledgers"""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, tenant_id: str) -> Optional[ClearanceRecord]:
        return self.db.query(ClearanceRecord).filter(ClearanceRecord.tenant_id == tenant_id).first()

    def find(self, tenant_id: str) -> Optional[Clearance]:
        record = self._find(tenant_id)
        return clearance_adapter.validate_python(record.ledger) if record is not None else None

    def get(self, tenant_id: str) -> Clearance:
        clearance = self.find(tenant_id)
        if clearance is None:
            raise NotFoundError(f"No clearance record found for tenant {tenant_id}")
        return clearance

    def save(self, clearance: Clearance) -> None:
        record = self._find(clearance.tenant_id)
        if record is None:
            record = ClearanceRecord(tenant_id=clearance.tenant_id)
            self.db.add(record)
        record.is_cleared = clearance.is_cleared
        record.ledger = _dump(clearance_adapter, clearance)
        self.db.flush()
