"""Domain-specific exceptions"""

from typing import Iterable, List, Tuple


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed, negative, missing or refers to an unknown month"""

    pass


class HouseOccupiedError(ValidationError):
    """House is already held by an active tenant"""

    pass


class NotFoundError(DomainException):
    """Tenant, billing period, house or clearance record does not exist"""

    pass


class PendingObligationsError(DomainException):
    """Operation requires every billing period to be cleared first"""

    def __init__(self, message: str, periods: Iterable[Tuple[int, str]] = ()):
        super().__init__(message)
        self.periods: List[Tuple[int, str]] = list(periods)


class ConcurrencyConflictError(DomainException):
    """Another writer holds or has already changed this tenant's ledgers"""

    pass


class InvariantViolation(DomainException):
    """Ledger arithmetic ended in an impossible state; the unit of work must abort"""

    pass
