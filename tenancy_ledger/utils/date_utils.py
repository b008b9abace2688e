"""Calendar helpers for billing periods"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Tuple

from tenancy_ledger.domain.exceptions import ValidationError

MONTHS: List[str] = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def month_index(month: str) -> int:
    """Zero-based index of a month name (case-insensitive)"""
    for index, name in enumerate(MONTHS):
        if name.lower() == str(month).strip().lower():
            return index
    raise ValidationError(f"Invalid month name: {month!r}")


def normalize_month(month) -> str:
    """Accept a month name or a 1-12 month number and return the canonical name"""
    if isinstance(month, int) and not isinstance(month, bool):
        if 1 <= month <= 12:
            return MONTHS[month - 1]
        raise ValidationError(f"Invalid month number: {month}")
    if isinstance(month, str) and month.strip().isdigit():
        return normalize_month(int(month.strip()))
    return MONTHS[month_index(month)]


def month_name(on: date) -> str:
    """Month name for a calendar date"""
    return MONTHS[on.month - 1]


def previous_period(year: int, month: str) -> Tuple[int, str]:
    """Preceding (year, month); January rolls back to December of the previous year"""
    index = month_index(month)
    if index == 0:
        return year - 1, MONTHS[11]
    return year, MONTHS[index - 1]


def period_key(year: int, month: str) -> Tuple[int, int]:
    """Chronological sort key for a billing period"""
    return year, month_index(month)


def utc_now() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)


def add_hours(moment: datetime, hours: int) -> datetime:
    """Shift a timestamp forward by whole hours"""
    return moment + timedelta(hours=hours)
