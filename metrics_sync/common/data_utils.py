"""
Data conversion utilities.

Provides type conversion functions for upstream payload values
(amount strings like "AED 739,451.37", loosely typed counts, timestamps).
"""

import re
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any, List, Dict, Optional

import dateutil.parser

_AMOUNT_STRIP = re.compile(r'[^\d.\-]')


def convert_to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Convert value to integer, handling None and empty strings.

    Safely converts numeric strings, floats, and integers.

    Args:
        value: Value to convert
        default: Returned when conversion fails

    Returns:
        int or default
    """
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (ValueError, TypeError, OverflowError):
        return default


def convert_to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Convert value to Decimal, handling None and empty strings.

    Uses string conversion to preserve precision for monetary values.

    Args:
        value: Value to convert
        default: Returned when conversion fails

    Returns:
        Decimal or default
    """
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def parse_amount(value: Any) -> Decimal:
    """
    Parse a monetary value that may carry a currency prefix and separators.

    Numbers pass through; strings keep only digits, '.' and '-'.
    Anything unparseable is 0.

    Example:
        >>> parse_amount("AED 739,451.37")
        Decimal('739451.37')
    """
    if value is None or value == "":
        return Decimal('0')
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return Decimal(str(value))
    cleaned = _AMOUNT_STRIP.sub('', str(value))
    return convert_to_decimal(cleaned, default=Decimal('0'))


def convert_to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert value to Python datetime.

    Handles multiple input types:
    - None/empty string: returns None
    - datetime object: returns as-is
    - string: parses using dateutil.parser

    Args:
        value: Datetime string, datetime object, or None

    Returns:
        datetime or None: Parsed datetime or None if parsing fails
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return dateutil.parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None


def convert_to_date(value: Any) -> Optional[date]:
    """Calendar date of ``value`` (date, datetime or parseable string)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = convert_to_datetime(value)
    return parsed.date() if parsed else None


def clean_str(value: Any) -> str:
    """Stripped string, '' for None."""
    if value is None:
        return ''
    return str(value).strip()


def first_present(row: Dict[str, Any], *keys: str) -> Any:
    """First value among ``keys`` that is not None or ''."""
    for key in keys:
        value = row.get(key)
        if value is not None and value != '':
            return value
    return None


def deduplicate_records(
    data: List[Dict[str, Any]],
    key_columns: List[str]
) -> List[Dict[str, Any]]:
    """
    Deduplicate records by composite key, keeping last occurrence.

    Duplicate keys inside one bulk upsert statement make PostgreSQL
    raise "ON CONFLICT DO UPDATE command cannot affect row a second time".

    Args:
        data: List of record dictionaries
        key_columns: List of column names that form the unique key

    Returns:
        Deduplicated list of records (keeps last duplicate)
    """
    seen = {}
    for record in data:
        key = tuple(record.get(col) for col in key_columns)
        seen[key] = record
    return list(seen.values())
