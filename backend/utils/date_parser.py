"""Date parsing utilities for claim and remittance rows."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

# Reasonable date bounds for healthcare claims
MIN_VALID_YEAR = 1900
MAX_VALID_YEAR = 2100

# Day zero for spreadsheet serial dates (absorbs the 1900 leap-year bug)
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

DATE_FORMATS = [
    "%Y-%m-%d",  # ISO 8601
    "%m/%d/%Y",  # US format
    "%d/%m/%Y",  # Day-first, only reached when the US reading is impossible
    "%Y%m%d",  # Compact
    "%Y/%m/%d",
    "%d-%b-%Y",  # 03-Aug-2025
    "%d %b %Y",
]


def _within_bounds(parsed: datetime) -> bool:
    return MIN_VALID_YEAR <= parsed.year <= MAX_VALID_YEAR


def parse_flexible_date(date_str: str | None) -> datetime | None:
    """Parse date from multiple common formats with validation.

    Supports the following formats:
    - ISO 8601: YYYY-MM-DD, optionally with a time part
    - US format: MM/DD/YYYY (e.g., 01/15/2024)
    - Day-first: DD/MM/YYYY when the day is above 12 (e.g., 15/01/2024)
    - Compact: YYYYMMDD (e.g., 20240115)
    - Month names: DD-Mon-YYYY (e.g., 15-Jan-2024)

    Validates that:
    - The date is a real calendar date (no Feb 30, etc.)
    - The year is between 1900 and 2100 (sensible for healthcare claims)

    Args:
        date_str: Date string to parse, or None

    Returns:
        Parsed datetime object, or None if parsing fails or input is None

    Examples:
        >>> parse_flexible_date("2024-01-15")
        datetime.datetime(2024, 1, 15, 0, 0)
        >>> parse_flexible_date("15/01/2024")
        datetime.datetime(2024, 1, 15, 0, 0)
        >>> parse_flexible_date("2024-01-15T08:30:00")
        datetime.datetime(2024, 1, 15, 8, 30)
        >>> parse_flexible_date("2024-02-30")  # Invalid date
        None
    """
    if not date_str:
        return None

    date_str = date_str.strip()
    if not date_str:
        return None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            # strptime raises ValueError for invalid dates like Feb 30
            continue
        if _within_bounds(parsed):
            return parsed

    # Timestamps exported with a time component
    try:
        parsed = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
    except ValueError:
        return None

    return parsed.replace(tzinfo=None) if _within_bounds(parsed) else None


def from_spreadsheet_serial(serial: float | int) -> datetime | None:
    """Convert a spreadsheet serial day number to a datetime.

    Returns None for non-finite values, serials below 1 and dates
    outside the valid year range.

    Examples:
        >>> from_spreadsheet_serial(45507)
        datetime.datetime(2024, 8, 3, 0, 0)
    """
    try:
        value = float(serial)
    except (TypeError, ValueError):
        return None

    if not math.isfinite(value) or value < 1:
        return None

    try:
        parsed = SPREADSHEET_EPOCH + timedelta(days=int(value))
    except OverflowError:
        return None

    return parsed if _within_bounds(parsed) else None
