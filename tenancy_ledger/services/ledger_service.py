"""Ledger orchestration: load, compute, persist and notify in one unit of work"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tenancy_ledger.config import Settings, settings as default_settings
from tenancy_ledger.domain.billing import add_overpay, find_period, latest_period, open_period, uncleared
from tenancy_ledger.domain.clearance import (
    ClearanceUpdate,
    FinalPeriodOutcome,
    ensure_no_pending,
    is_eligible_for_removal,
    settle,
    settle_final_period,
    update_clearance,
)
from tenancy_ledger.domain.clearing import clear_across_periods
from tenancy_ledger.domain.corrections import CorrectionOutcome, correct_deficits
from tenancy_ledger.domain.deposits import DepositOutcome, allocate_deposit, new_deposit_ledger, reprice_initial_rent
from tenancy_ledger.domain.exceptions import ConcurrencyConflictError, NotFoundError, ValidationError
from tenancy_ledger.domain.models import (
    BillingPeriod,
    Clearance,
    FeeItem,
    House,
    HouseTerms,
    Tenant,
    TenantBalance,
)
from tenancy_ledger.domain.money import ZERO, MoneyInput, quantize, to_money, total
from tenancy_ledger.domain.monthly import PaymentOutcome, apply_extra_payment, process_month
from tenancy_ledger.infrastructure.clients.notifier import EmailMessage
from tenancy_ledger.infrastructure.database.repositories import (
    BillingPeriodRepository,
    ClearanceRepository,
    HouseRepository,
    TenantRepository,
)
from tenancy_ledger.infrastructure.locks import TenantLockRegistry, tenant_locks
from tenancy_ledger.infrastructure.observability.logging import log_allocation, log_settlement
from tenancy_ledger.infrastructure.observability.metrics import (
    conflict_counter,
    record_allocation,
    record_settlement,
    removal_counter,
)
from tenancy_ledger.infrastructure.scheduler import RemovalScheduler
from tenancy_ledger.utils.date_utils import add_hours, month_name, normalize_month, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ExitNotice:
    """Emails to send once an exit has been recorded"""

    tenant_id: str
    refund: Decimal
    removal_not_after: datetime
    messages: List[EmailMessage]


def _required(**fields: Optional[str]) -> None:
    missing = [name for name, value in fields.items() if value is None or not str(value).strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


class LedgerService:
    """
    Tenant ledger operations.

    Every write holds the tenant's lock and runs as one database
    transaction: ledgers are loaded, recomputed in the domain layer and
    persisted together, or nothing is written at all.
    """

    def __init__(
        self,
        db: Session,
        locks: TenantLockRegistry = tenant_locks,
        scheduler: Optional[RemovalScheduler] = None,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.locks = locks
        self.scheduler = scheduler or RemovalScheduler(db)
        self.settings = settings
        self.houses = HouseRepository(db)
        self.tenants = TenantRepository(db)
        self.periods = BillingPeriodRepository(db)
        self.clearances = ClearanceRepository(db)

    @contextmanager
    def unit_of_work(self, key: str) -> Iterator[None]:
        """
        Serialize writers on `key` and commit or roll back as one transaction.

        Raises:
            ConcurrencyConflictError: Lock timeout, stale version or unique-key race
        """
        with self.locks.hold(key):
            try:
                yield
                self.db.commit()
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                conflict_counter.inc()
                logger.warning(f"Concurrent update rejected: {e}", extra={"lock_key": key})
                raise ConcurrencyConflictError(f"Ledger for {key} was changed concurrently; retry") from e
            except Exception:
                self.db.rollback()
                raise

    # Houses

    def register_house(
        self,
        apartment_id: str,
        floor: int,
        name: str,
        rent_payable: MoneyInput = None,
        rent_deposit: MoneyInput = None,
        water_deposit: MoneyInput = None,
        months_used_for_rent_deposit: int = 1,
        other_deposits: Sequence[Tuple[str, MoneyInput]] = (),
    ) -> House:
        """Register a vacant house; unspecified amounts default to zero"""
        _required(apartment_id=apartment_id, name=name)
        if floor is None or floor < 0:
            raise ValidationError("floor must be a non-negative integer")
        house = House(
            id="",
            apartment_id=apartment_id,
            floor=floor,
            name=name.strip(),
            rent_payable=to_money(rent_payable, "rent_payable", default=ZERO),
            rent_deposit=to_money(rent_deposit, "rent_deposit", default=ZERO),
            water_deposit=to_money(water_deposit, "water_deposit", default=ZERO),
            months_used_for_rent_deposit=months_used_for_rent_deposit,
            other_deposits=[
                FeeItem(title=title, amount=to_money(amount, f"other deposit {title}", default=ZERO))
                for title, amount in other_deposits
            ],
        )
        with self.unit_of_work(f"house:{apartment_id}:{floor}:{house.name}"):
            house = self.houses.register(house)
        logger.info("House registered", extra={"house_id": house.id, "apartment_id": apartment_id})
        return house

    def delete_house(self, house_id: str) -> None:
        with self.unit_of_work(f"house:{house_id}"):
            self.houses.delete(house_id)

    def list_houses(self, apartment_id: Optional[str] = None, vacant_only: bool = False) -> List[House]:
        return self.houses.list_houses(apartment_id, vacant_only)

    # Tenants

    def onboard_tenant(
        self,
        name: str,
        email: str,
        phone: str,
        national_id: str,
        apartment_id: str,
        floor: int,
        house_name: str,
        placement_date: date,
        garbage_fee: MoneyInput = None,
    ) -> Tenant:
        """
        Move a tenant into a vacant house.

        House terms (rent, garbage fee, deposits) are copied onto the tenant
        and an unpaid deposit ledger is opened against them.

        Raises:
            ValidationError: Missing field or national ID already registered
            NotFoundError: No such house
            HouseOccupiedError: House already taken
        """
        _required(name=name, email=email, phone=phone, national_id=national_id, apartment_id=apartment_id, house_name=house_name)
        if placement_date is None:
            raise ValidationError("Missing required fields: placement_date")
        fee = to_money(garbage_fee, "garbage_fee", default=self.settings.default_garbage_fee)

        with self.unit_of_work(f"house:{apartment_id}:{floor}:{house_name}"):
            house = self.houses.find_available_house(apartment_id, floor, house_name)
            if self.tenants.national_id_taken(national_id):
                raise ValidationError(f"Tenant with national ID {national_id} already exists")

            terms = HouseTerms(
                rent=quantize(house.rent_payable),
                garbage_fee=fee,
                rent_deposit=quantize(house.rent_deposit),
                water_deposit=quantize(house.water_deposit),
                other_deposits=[item for item in house.other_deposits if item.amount > 0],
            )
            tenant = Tenant(
                id="",
                name=name,
                email=email,
                phone=phone,
                national_id=national_id,
                apartment_id=apartment_id,
                house_id=house.id,
                house_name=house.name,
                floor=house.floor,
                placement_date=placement_date,
                house_terms=terms,
                deposits=new_deposit_ledger(terms, placement_date),
            )
            tenant = self.tenants.add(tenant)
            self.houses.set_occupied(house.id, True)

        logger.info("Tenant onboarded", extra={"tenant_id": tenant.id, "house_id": house.id})
        return tenant

    def move_tenant(self, tenant_id: str, apartment_id: str, floor: int, house_name: str) -> Tenant:
        """Release the tenant's house, occupy another and re-price rent from it"""
        _required(apartment_id=apartment_id, house_name=house_name)
        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            house = self.houses.find_available_house(apartment_id, floor, house_name)
            self.houses.set_occupied(tenant.house_id, False)
            self.houses.set_occupied(house.id, True)
            tenant.apartment_id = house.apartment_id
            tenant.house_id = house.id
            tenant.house_name = house.name
            tenant.floor = house.floor
            tenant.house_terms.rent = quantize(house.rent_payable)
            reprice_initial_rent(tenant.deposits, tenant.house_terms.rent, date.today())
            self.tenants.save(tenant)
        logger.info("Tenant moved", extra={"tenant_id": tenant_id, "house_id": house.id})
        return tenant

    def update_house_terms(self, tenant_id: str, rent: MoneyInput = None, garbage_fee: MoneyInput = None) -> Tenant:
        """Change rent and garbage fee billed in future periods"""
        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            if rent is not None:
                tenant.house_terms.rent = to_money(rent, "rent")
                reprice_initial_rent(tenant.deposits, tenant.house_terms.rent, date.today())
            if garbage_fee is not None:
                tenant.house_terms.garbage_fee = to_money(garbage_fee, "garbage_fee")
            self.tenants.save(tenant)
        return tenant

    # Payments

    def add_deposit(self, tenant_id: str, amount: MoneyInput, reference: str, on: Optional[date] = None) -> DepositOutcome:
        """
        Apply a deposit installment.

        When the deposits become complete, the initial rent payment and any
        surplus open (or top up) the tenant's first billing period.
        """
        amount = to_money(amount)
        _required(reference_number=reference)
        on = on or date.today()

        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            outcome = allocate_deposit(tenant.deposits, amount, on, reference)

            touched: List[BillingPeriod] = []
            if outcome.forward > 0:
                periods = self.periods.for_tenant(tenant_id)
                placement = tenant.placement_date
                first = find_period(periods, placement.year, month_name(placement))
                if first is None:
                    first = open_period(
                        tenant.id,
                        placement.year,
                        month_name(placement),
                        tenant.house_terms.rent,
                        tenant.house_terms.garbage_fee,
                        on,
                        reference,
                    )
                    periods.append(first)
                clearing = clear_across_periods(periods, outcome.forward, on, reference, "deposit completion")
                touched = [first, *[period for period in clearing.touched if period is not first]]
                if clearing.remainder > 0:
                    newest = latest_period(periods)
                    add_overpay(newest, clearing.remainder, on, f"Excess from deposit {reference}")
                    if all(newest is not period for period in touched):
                        touched.append(newest)
                self.periods.save_all(touched)

            self.tenants.save(tenant)

        record_allocation("deposit", amount, outcome.applied, outcome.excess_amount)
        log_allocation(tenant_id, "deposit", reference, amount, outcome.applied, outcome.excess_amount, len(touched))
        return outcome

    def process_month(
        self,
        tenant_id: str,
        month: str,
        year: int,
        amount: MoneyInput,
        reference: str,
        on: Optional[date] = None,
        previous_water_bill: MoneyInput = None,
        previous_extra_charges: MoneyInput = None,
        previous_extra_description: str = "",
        extra_charges: MoneyInput = None,
        extra_description: str = "",
    ) -> PaymentOutcome:
        """Monthly payment: carry forward, clear arrears, pay this cycle"""
        amount = to_money(amount)
        _required(reference_number=reference)
        month = normalize_month(month)
        on = on or date.today()

        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            periods = self.periods.for_tenant(tenant_id)
            outcome = process_month(
                tenant,
                periods,
                year,
                month,
                amount,
                on,
                reference,
                previous_water_bill=to_money(previous_water_bill, "previous_water_bill", default=ZERO),
                previous_extra_charges=to_money(previous_extra_charges, "previous_extra_charges", default=ZERO),
                previous_extra_description=previous_extra_description,
                extra_charges=to_money(extra_charges, "extra_charges", default=ZERO),
                extra_description=extra_description,
            )
            self.periods.save_all(outcome.touched)

        record_allocation("monthly", amount, outcome.applied, outcome.overpay)
        log_allocation(tenant_id, "monthly", reference, amount, outcome.applied, outcome.overpay, len(outcome.touched))
        return outcome

    def apply_extra_payment(self, tenant_id: str, amount: MoneyInput, reference: str, on: Optional[date] = None) -> PaymentOutcome:
        """Ad-hoc payment against arrears; leftover is overpay on the latest ledger"""
        amount = to_money(amount)
        _required(reference_number=reference)
        on = on or date.today()

        with self.unit_of_work(tenant_id):
            self.tenants.get(tenant_id)
            periods = self.periods.for_tenant(tenant_id)
            outcome = apply_extra_payment(periods, amount, on, reference)
            self.periods.save_all(outcome.touched)

        record_allocation("extra", amount, outcome.applied, outcome.overpay)
        log_allocation(tenant_id, "extra", reference, amount, outcome.applied, outcome.overpay, len(outcome.touched))
        return outcome

    def correct_deficits(
        self,
        tenant_id: str,
        year: int,
        month: str,
        reference: str,
        on: Optional[date] = None,
        rent_deficit: MoneyInput = None,
        accumulated_water_bill: MoneyInput = None,
        garbage_deficit: MoneyInput = None,
        extra_charges_deficit: MoneyInput = None,
        extra_description: str = "",
    ) -> CorrectionOutcome:
        """Operator correction of a period's balances; may spend overpay of two ledgers"""
        _required(reference_number=reference)
        on = on or date.today()
        parsed = {
            name: (to_money(value, name) if value is not None else None)
            for name, value in (
                ("rent_deficit", rent_deficit),
                ("accumulated_water_bill", accumulated_water_bill),
                ("garbage_deficit", garbage_deficit),
                ("extra_charges_deficit", extra_charges_deficit),
            )
        }

        with self.unit_of_work(tenant_id):
            periods = self.periods.for_tenant(tenant_id)
            period = find_period(periods, year, month)
            if period is None:
                raise NotFoundError(f"No payment record found for {normalize_month(month)} {year}")
            outcome = correct_deficits(period, periods, on, reference, extra_description=extra_description, **parsed)
            self.periods.save_all(outcome.touched)

        applied = quantize(outcome.from_own_overpay + outcome.from_donor)
        record_allocation("correction", applied, applied, ZERO)
        log_allocation(tenant_id, "correction", reference, applied, applied, ZERO, len(outcome.touched))
        return outcome

    # Exit

    def settle_final_period(
        self,
        tenant_id: str,
        water_bill: MoneyInput,
        on: Optional[date] = None,
        garbage_fee: MoneyInput = None,
        extra_charges: MoneyInput = None,
        extra_description: str = "",
        reference: str = "",
    ) -> FinalPeriodOutcome:
        """Bill the exit month's utilities and pay them from overpay and deposits"""
        on = on or date.today()
        water = to_money(water_bill, "water_bill")

        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            fee = to_money(garbage_fee, "garbage_fee", default=tenant.house_terms.garbage_fee)
            periods = self.periods.for_tenant(tenant_id)
            outcome = settle_final_period(
                tenant,
                periods,
                on,
                water,
                fee,
                to_money(extra_charges, "extra_charges", default=ZERO),
                extra_description,
                reference,
            )
            self.periods.save_all([outcome.period, *outcome.touched])
            self.tenants.save(tenant)

        applied = quantize(outcome.from_overpay + outcome.from_water_deposit + outcome.from_rent_deposit)
        record_allocation("final_period", applied, applied, outcome.period.overpay)
        log_allocation(tenant_id, "final_period", outcome.period.reference_number, applied, applied, outcome.period.overpay, 1 + len(outcome.touched))
        return outcome

    def settle_exit(
        self,
        tenant_id: str,
        exit_date: date,
        painting_fee: MoneyInput,
        miscellaneous: Sequence[Tuple[str, MoneyInput]] = (),
        reference: str = "",
    ) -> Clearance:
        """
        Settle exit fees from remaining deposits and schedule removal.

        Raises:
            PendingObligationsError: Uncleared billing periods exist
            ValidationError: Clearance already recorded
        """
        painting = to_money(painting_fee, "painting_fee")
        fees = [FeeItem(title=title, amount=to_money(amount, title or "miscellaneous fee")) for title, amount in miscellaneous]
        if exit_date is None:
            raise ValidationError("Missing required fields: exit_date")

        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            if self.clearances.find(tenant_id) is not None:
                raise ValidationError(f"Tenant {tenant_id} already has a clearance record; update it instead")
            periods = self.periods.for_tenant(tenant_id)
            clearance = settle(tenant, periods, exit_date, painting, fees, reference)
            self.clearances.save(clearance)
            self.tenants.save(tenant)
            self.scheduler.schedule(tenant_id, add_hours(utc_now(), self.settings.removal_grace_hours))

        record_settlement(clearance.is_cleared)
        log_settlement(tenant_id, clearance.is_cleared, clearance.overpay, clearance.global_deficit)
        return clearance

    def update_clearance(
        self,
        tenant_id: str,
        amount: MoneyInput,
        reference: str,
        on: Optional[date] = None,
        month: Optional[str] = None,
        year: Optional[int] = None,
    ) -> ClearanceUpdate:
        """Pay more money into a tenant's exit clearance"""
        amount = to_money(amount)
        on = on or date.today()
        if month is not None:
            month = normalize_month(month)

        with self.unit_of_work(tenant_id):
            clearance = self.clearances.get(tenant_id)
            periods = self.periods.for_tenant(tenant_id)
            outcome = update_clearance(clearance, periods, amount, on, reference, month, year)
            self.periods.save_all(outcome.touched)
            self.clearances.save(clearance)

        applied = quantize(amount - outcome.remainder)
        record_allocation("clearance", amount, applied, outcome.remainder)
        log_allocation(tenant_id, "clearance", reference, amount, applied, outcome.remainder, len(outcome.touched))
        return outcome

    def prepare_exit_notice(
        self,
        tenant_id: str,
        owner_email: Optional[str] = None,
        refund_amount: MoneyInput = None,
        exit_date: Optional[date] = None,
    ) -> ExitNotice:
        """
        Flag the tenant for removal, (re)start the removal timer and build the
        tenant and owner emails. Sending happens after commit.
        """
        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            clearance = self.clearances.find(tenant_id)
            default_refund = clearance.overpay if clearance is not None else ZERO
            refund = to_money(refund_amount, "refund_amount", default=default_refund)
            exit_on = exit_date or tenant.exiting_date or date.today()

            tenant.to_be_cleared = True
            tenant.exiting_date = exit_on
            self.tenants.save(tenant)
            not_after = add_hours(utc_now(), self.settings.removal_grace_hours)
            self.scheduler.schedule(tenant_id, not_after)

        currency = self.settings.currency
        messages = [
            EmailMessage(
                to=tenant.email,
                subject="Thank You for Your Stay",
                body=(
                    f"Dear {tenant.name},\n\n"
                    f"Thank you for staying in house {tenant.house_name}. Your exit date is recorded as "
                    f"{exit_on.isoformat()}. A refund of {currency} {refund} will be processed.\n"
                ),
            )
        ]
        if owner_email:
            messages.append(
                EmailMessage(
                    to=owner_email,
                    subject="Tenant Exit Notification",
                    body=(
                        f"Tenant {tenant.name} (national ID {tenant.national_id}) is leaving house "
                        f"{tenant.house_name} on floor {tenant.floor} on {exit_on.isoformat()}. "
                        f"Refund due: {currency} {refund}.\n"
                    ),
                )
            )
        return ExitNotice(tenant_id=tenant_id, refund=refund, removal_not_after=not_after, messages=messages)

    def remove_tenant(self, tenant_id: str, force: bool = False, trigger: str = "manual") -> None:
        """
        Delete a tenant with all ledgers and release the house.

        Raises:
            PendingObligationsError: Uncleared periods exist and `force` is not set
        """
        with self.unit_of_work(tenant_id):
            tenant = self.tenants.get(tenant_id)
            if not force:
                ensure_no_pending(self.periods.for_tenant(tenant_id), "remove tenant")
            self.houses.set_occupied(tenant.house_id, False)
            self.tenants.delete(tenant_id)
            self.scheduler.cancel(tenant_id)

        removal_counter.labels(trigger=trigger, outcome="removed").inc()
        logger.info("Tenant removed", extra={"tenant_id": tenant_id, "trigger": trigger, "forced": force})

    def remove_if_eligible(self, tenant_id: str) -> bool:
        """Scheduled removal: delete only when every obligation is cleared"""
        try:
            eligible = self.is_eligible_for_removal(tenant_id)
        except NotFoundError:
            with self.unit_of_work(tenant_id):
                self.scheduler.cancel(tenant_id)
            logger.info("Scheduled removal dropped for missing tenant", extra={"tenant_id": tenant_id})
            return False

        if not eligible:
            with self.unit_of_work(tenant_id):
                self.scheduler.mark_attempt(tenant_id)
            removal_counter.labels(trigger="scheduled", outcome="deferred").inc()
            logger.warning("Scheduled removal deferred: obligations outstanding", extra={"tenant_id": tenant_id})
            return False

        self.remove_tenant(tenant_id, trigger="scheduled")
        return True

    # Queries

    def tenant(self, tenant_id: str) -> Tenant:
        return self.tenants.get(tenant_id)

    def tenant_periods(self, tenant_id: str) -> List[BillingPeriod]:
        self.tenants.get(tenant_id)
        return self.periods.for_tenant(tenant_id)

    def period(self, tenant_id: str, year: int, month: str) -> BillingPeriod:
        return self.periods.get(tenant_id, year, month)

    def unpaid_periods(self, tenant_id: str) -> List[BillingPeriod]:
        return self.periods.uncleared(tenant_id)

    def cleared_periods(self, tenant_id: str) -> List[BillingPeriod]:
        return self.periods.cleared(tenant_id)

    def clearance(self, tenant_id: str) -> Clearance:
        return self.clearances.get(tenant_id)

    def tenants_with_incomplete_deposits(self) -> List[Tenant]:
        return self.tenants.with_incomplete_deposits()

    def tenants_to_be_cleared(self) -> List[Tenant]:
        return self.tenants.to_be_cleared()

    def is_eligible_for_removal(self, tenant_id: str) -> bool:
        tenant = self.tenants.get(tenant_id)
        return is_eligible_for_removal(tenant, self.periods.for_tenant(tenant_id), self.clearances.find(tenant_id))

    def tenant_balance(self, tenant_id: str) -> TenantBalance:
        tenant = self.tenants.get(tenant_id)
        periods = self.periods.for_tenant(tenant_id)
        return TenantBalance(
            tenant_id=tenant_id,
            total_deficit=total(period.global_deficit for period in periods),
            total_overpay=total(period.overpay for period in periods),
            total_paid=total(period.total_amount_paid for period in periods),
            periods=len(periods),
            uncleared_periods=len(uncleared(periods)),
            deposits_cleared=tenant.deposits.is_cleared,
        )
