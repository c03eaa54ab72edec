"""Unified analytics time frames and their date ranges"""

from datetime import date, timedelta
from enum import Enum
from typing import Dict, Tuple

from blink_backend.domain.exceptions import DomainRuleError
from blink_backend.utils.date_utils import start_of_quarter, start_of_week, subtract_months


class TimeFrame(str, Enum):
    WEEK = "LAST_WEEK"
    MONTH = "LAST_MONTH"
    QUARTER = "LAST_QUARTER"
    SIX_MONTHS = "LAST_SIX_MONTHS"
    YEAR = "LAST_YEAR"
    WEEK_TO_DATE = "WTD"
    MONTH_TO_DATE = "MTD"
    QUARTER_TO_DATE = "QTD"
    YEAR_TO_DATE = "YTD"


class Granularity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Every spelling historically accepted by the analytics endpoints
_ALIASES: Dict[str, TimeFrame] = {
    "last_week": TimeFrame.WEEK,
    "week": TimeFrame.WEEK,
    "last_month": TimeFrame.MONTH,
    "month": TimeFrame.MONTH,
    "last_quarter": TimeFrame.QUARTER,
    "quarter": TimeFrame.QUARTER,
    "last_six_months": TimeFrame.SIX_MONTHS,
    "6months": TimeFrame.SIX_MONTHS,
    "last_year": TimeFrame.YEAR,
    "year": TimeFrame.YEAR,
    "1year": TimeFrame.YEAR,
    "wtd": TimeFrame.WEEK_TO_DATE,
    "mtd": TimeFrame.MONTH_TO_DATE,
    "qtd": TimeFrame.QUARTER_TO_DATE,
    "ytd": TimeFrame.YEAR_TO_DATE,
}

_ROLLING_MONTHS: Dict[TimeFrame, int] = {
    TimeFrame.MONTH: 1,
    TimeFrame.QUARTER: 3,
    TimeFrame.SIX_MONTHS: 6,
    TimeFrame.YEAR: 12,
}


def parse_time_frame(raw: str) -> TimeFrame:
    """Accept any known spelling, case-insensitively"""
    key = (raw or "").strip().lower()
    if key not in _ALIASES:
        accepted = ", ".join(t.value for t in TimeFrame)
        raise DomainRuleError(f"Invalid time frame. Must be one of: {accepted}.")
    return _ALIASES[key]


def date_range(time_frame: TimeFrame, today: date) -> Tuple[date, date]:
    """
    Inclusive (start, end) dates for a time frame ending today.

    Rolling windows cover the last 7 days or the last N calendar months;
    to-date windows start at the beginning of the current week (Monday),
    month, quarter, or year.
    """
    if time_frame == TimeFrame.WEEK:
        return today - timedelta(days=6), today
    if time_frame in _ROLLING_MONTHS:
        start = subtract_months(today, _ROLLING_MONTHS[time_frame]) + timedelta(days=1)
        return start, today
    if time_frame == TimeFrame.WEEK_TO_DATE:
        return start_of_week(today), today
    if time_frame == TimeFrame.MONTH_TO_DATE:
        return today.replace(day=1), today
    if time_frame == TimeFrame.QUARTER_TO_DATE:
        return start_of_quarter(today), today
    return date(today.year, 1, 1), today


def window_days(start: date, end: date) -> int:
    return (end - start).days + 1


def granularity_for(start: date, end: date) -> Granularity:
    """Daily buckets for a week, weekly for about a month, monthly beyond"""
    days = window_days(start, end)
    if days <= 7:
        return Granularity.DAILY
    if days <= 31:
        return Granularity.WEEKLY
    return Granularity.MONTHLY
