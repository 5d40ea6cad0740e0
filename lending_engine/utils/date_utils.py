"""Date manipulation utilities"""

from datetime import date, datetime, time, timezone
from dateutil.relativedelta import relativedelta


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping to the last day of shorter months (Jan 31 + 1 -> Feb 28/29)"""
    return start + relativedelta(months=months)


def as_date(value: date | datetime) -> date:
    """Calendar date of a timestamp or date"""
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_day(day: date) -> datetime:
    """Midnight UTC on the given date"""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_between(start: date, end: date) -> int:
    """Whole days from start to end (negative if end precedes start)"""
    return (end - start).days
