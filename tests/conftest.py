"""Pytest fixtures for testing"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from tenancy_ledger.api.main import create_app
from tenancy_ledger.domain.deposits import new_deposit_ledger
from tenancy_ledger.domain.models import FeeItem, HouseTerms, Tenant
from tenancy_ledger.infrastructure.database.models import Base
from tenancy_ledger.infrastructure.database.session import get_db
from tenancy_ledger.infrastructure.locks import TenantLockRegistry
from tenancy_ledger.services.ledger_service import LedgerService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for a second connection to the test database (sweeps, concurrent writers)"""
    return TestingSessionLocal


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def service(db: Session) -> LedgerService:
    """Ledger service on the test session with its own lock registry"""
    return LedgerService(db, locks=TenantLockRegistry(timeout=0.5))


@pytest.fixture
def house(service: LedgerService):
    """Vacant house: rent 10,000, deposits 10,000 + 2,000 water + 500 key"""
    return service.register_house(
        apartment_id="APT-1",
        floor=1,
        name="A1",
        rent_payable="10000",
        rent_deposit="10000",
        water_deposit="2000",
        other_deposits=[("Key", "500")],
    )


@pytest.fixture
def tenant(service: LedgerService, house) -> Tenant:
    """Tenant placed in house A1 on 5 January 2024 (garbage fee defaults to 150)"""
    return service.onboard_tenant(
        name="Jane Wanjiru",
        email="jane@example.com",
        phone="0712000000",
        national_id="12345678",
        apartment_id="APT-1",
        floor=1,
        house_name="A1",
        placement_date=date(2024, 1, 5),
    )


@pytest.fixture
def terms() -> HouseTerms:
    return HouseTerms(
        rent=Decimal("10000.00"),
        garbage_fee=Decimal("500.00"),
        rent_deposit=Decimal("10000.00"),
        water_deposit=Decimal("2000.00"),
        other_deposits=[FeeItem(title="Key", amount=Decimal("500.00"))],
    )


@pytest.fixture
def domain_tenant(terms: HouseTerms) -> Tenant:
    """In-memory tenant for pure domain tests"""
    return Tenant(
        id="tenant-1",
        name="Jane Wanjiru",
        email="jane@example.com",
        phone="0712000000",
        national_id="12345678",
        apartment_id="APT-1",
        house_id="house-1",
        house_name="A1",
        floor=1,
        placement_date=date(2024, 1, 5),
        house_terms=terms,
        deposits=new_deposit_ledger(terms, date(2024, 1, 5)),
    )
