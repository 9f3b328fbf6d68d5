"""File loaders for claim and remittance uploads."""

from .csv_rows import (
    ParsedRows,
    SkippedRow,
    load_claim_rows,
    load_remittance_rows,
    normalize_header,
)

__all__ = [
    "ParsedRows",
    "SkippedRow",
    "load_claim_rows",
    "load_remittance_rows",
    "normalize_header",
]
