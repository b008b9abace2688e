"""SQLAlchemy ORM models for houses, tenants and their ledgers"""

import uuid
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class HouseRecord(Base):
    """Rentable unit; at most one active tenant"""

    __tablename__ = "house"
    __table_args__ = (UniqueConstraint("apartment_id", "floor", "name", name="uq_house_location"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    apartment_id = Column(Text, nullable=False, index=True)
    floor = Column(Integer, nullable=False)
    name = Column(Text, nullable=False)
    rent_payable = Column(Numeric(12, 2), nullable=False, default=0)
    rent_deposit = Column(Numeric(12, 2), nullable=False, default=0)
    water_deposit = Column(Numeric(12, 2), nullable=False, default=0)
    months_used_for_rent_deposit = Column(Integer, nullable=False, default=1)
    other_deposits = Column(JSON, nullable=False, default=list)
    is_occupied = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    tenants = relationship("TenantRecord", back_populates="house")


class TenantRecord(Base):
    """Tenant with house terms and deposit ledger documents"""

    __tablename__ = "tenant"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    national_id = Column(Text, nullable=False, unique=True)
    apartment_id = Column(Text, nullable=False, index=True)
    house_id = Column(String(36), ForeignKey("house.id", ondelete="RESTRICT"), nullable=False)
    house_name = Column(Text, nullable=False)
    floor = Column(Integer, nullable=False)
    placement_date = Column(Date, nullable=False)
    house_terms = Column(JSON, nullable=False)
    deposits = Column(JSON, nullable=False)
    deposits_cleared = Column(Boolean, nullable=False, default=False, index=True)
    to_be_cleared = Column(Boolean, nullable=False, default=False, index=True)
    exiting_date = Column(Date, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    house = relationship("HouseRecord", back_populates="tenants")
    periods = relationship("BillingPeriodRecord", back_populates="tenant", cascade="all, delete-orphan")
    clearance = relationship(
        "ClearanceRecord", back_populates="tenant", cascade="all, delete-orphan", uselist=False
    )


class BillingPeriodRecord(Base):
    """One ledger per tenant per calendar month"""

    __tablename__ = "billing_period"
    __table_args__ = (UniqueConstraint("tenant_id", "year", "month", name="uq_billing_period_month"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Text, nullable=False)
    month_index = Column(Integer, nullable=False)
    is_cleared = Column(Boolean, nullable=False, index=True)
    global_deficit = Column(Numeric(12, 2), nullable=False)
    overpay = Column(Numeric(12, 2), nullable=False)
    ledger = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    tenant = relationship("TenantRecord", back_populates="periods")


class ClearanceRecord(Base):
    """Exit settlement ledger, created once per tenant"""

    __tablename__ = "clearance"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False, unique=True)
    is_cleared = Column(Boolean, nullable=False)
    ledger = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}

    tenant = relationship("TenantRecord", back_populates="clearance")


class ScheduledRemoval(Base):
    """Deferred tenant removal, keyed by tenant"""

    __tablename__ = "scheduled_removal"

    tenant_id = Column(String(36), primary_key=True)
    not_after = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
