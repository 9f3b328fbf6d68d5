"""Canonical forms for matching fields.

Claims and remittance statements come from different systems, often via
spreadsheets, so the same member number or bill reference shows up with
different punctuation, case or a numeric ``.0`` tail. Everything that takes
part in a composite key goes through these functions first.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from utils.date_parser import from_spreadsheet_serial, parse_flexible_date

_SPREADSHEET_TAIL = re.compile(r"\.0{1,2}$")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


def _clean_identifier(raw: Any) -> str:
    text = str(raw).strip().replace(",", "")
    text = _SPREADSHEET_TAIL.sub("", text)
    return _NON_ALNUM.sub("", text.upper())


def normalize_member(raw: Any) -> str:
    """Canonical member number; empty string when nothing usable remains.

    >>> normalize_member("6444720.0")
    '6444720'
    >>> normalize_member("cs012160-00")
    'CS01216000'
    """
    if raw is None:
        return ""
    return _clean_identifier(raw)


def normalize_invoice(raw: Any) -> str | None:
    """Canonical invoice/bill number.

    Returns None when no value was supplied at all, and possibly an empty
    string when a value was supplied but is pure punctuation.
    """
    if raw is None or str(raw).strip() == "":
        return None
    return _clean_identifier(raw)


def normalize_date(value: Any) -> str:
    """Render a service date as YYYY-MM-DD, or "" when it cannot be read."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        parsed = from_spreadsheet_serial(value)
    else:
        parsed = parse_flexible_date(str(value))
    return parsed.date().isoformat() if parsed else ""


def to_cents(amount: Any) -> int:
    """Convert a currency amount to integer minor units.

    Rounds half away from zero. Non-finite, missing or unreadable amounts
    map to 0. Strings may carry thousands separators or a currency label.
    """
    if amount is None or isinstance(amount, bool):
        return 0

    text = _AMOUNT_NOISE.sub("", amount) if isinstance(amount, str) else str(amount)
    if not text:
        return 0

    try:
        value = Decimal(text)
        if not value.is_finite():
            return 0
        return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0


def from_cents(cents: int) -> float:
    return round(cents / 100, 2)
