"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import List


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]


def subtract_months(from_date: date, months: int) -> date:
    """Move back whole months, clamping the day to the target month's length"""
    month_index = from_date.year * 12 + (from_date.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def start_of_week(d: date) -> date:
    """Monday of the week containing d"""
    return d - timedelta(days=d.weekday())


def start_of_quarter(d: date) -> date:
    return date(d.year, ((d.month - 1) // 3) * 3 + 1, 1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on round-trip; stored values are always UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
