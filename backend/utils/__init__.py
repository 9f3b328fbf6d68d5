"""Shared utility functions for the claim reconciliation backend."""

from .date_parser import from_spreadsheet_serial, parse_flexible_date
from .sanitization import sanitize_filename, sanitize_label

__all__ = [
    "from_spreadsheet_serial",
    "parse_flexible_date",
    "sanitize_filename",
    "sanitize_label",
]
