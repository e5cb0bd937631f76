"""
Date utilities for sync windows and report ranges.

"Yesterday" is always computed in the sync time zone (Asia/Dubai by
default), not in the host's local time.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytz

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def today_in_tz(tz_name: str = 'Asia/Dubai') -> date:
    """
    Current calendar date in the given time zone.

    Args:
        tz_name: IANA time zone name

    Returns:
        date: Today's date in that zone
    """
    return datetime.now(pytz.timezone(tz_name)).date()


def get_yesterday(tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> date:
    """Yesterday in the given time zone (or relative to ``today``)."""
    return (today or today_in_tz(tz_name)) - timedelta(days=1)


def get_day_before_yesterday(tz_name: str = 'Asia/Dubai', today: Optional[date] = None) -> date:
    return (today or today_in_tz(tz_name)) - timedelta(days=2)


def get_first_day_of_month(year: int, month: int) -> date:
    """
    Get the first day of a given month.

    Args:
        year: Target year
        month: Target month (1-12)

    Returns:
        date: First day of the specified month
    """
    return date(year, month, 1)


def get_last_day_of_month(year: int, month: int) -> date:
    """
    Get the last day of a given month.

    Args:
        year: Target year
        month: Target month (1-12)

    Returns:
        date: Last day of the specified month
    """
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def get_previous_month(year: int, month: int) -> Tuple[int, int]:
    """(year, month) of the month before the given one."""
    if month == 1:
        return year - 1, 12
    return year, month - 1


def iter_days(start: date, end: date) -> List[date]:
    """
    Every calendar day from ``start`` to ``end`` inclusive.

    Example:
        >>> iter_days(date(2026, 1, 30), date(2026, 2, 1))
        [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]
    """
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def get_date_range_days_back(days_back: int, end: date) -> Tuple[date, date]:
    """
    Window of ``days_back`` days ending on ``end`` (inclusive).

    Example:
        >>> get_date_range_days_back(30, date(2026, 1, 31))
        (date(2026, 1, 2), date(2026, 1, 31))
    """
    return end - timedelta(days=days_back - 1), end


def is_valid_date_format(value: str) -> bool:
    """True if ``value`` is a real calendar date in YYYY-MM-DD form."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        parse_date_string(value)
    except ValueError:
        return False
    return True


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD format.

    Args:
        date_str: Date string in YYYY-MM-DD format (e.g., "2026-01-15")

    Returns:
        date object

    Raises:
        ValueError: If the string is not a valid date
    """
    parts = date_str.strip()[:10].split('-')
    if len(parts) != 3:
        raise ValueError(f"Invalid date: {date_str!r} (expected YYYY-MM-DD)")
    return date(int(parts[0]), int(parts[1]), int(parts[2]))


def format_date(value: date) -> str:
    return value.strftime('%Y-%m-%d')


def utc_now() -> datetime:
    """Naive UTC timestamp for the DateTime audit columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
