"""CSV loaders for claim and remittance exports.

Providers and billing systems export the same columns under different
headers ("Member Number", "MEMBERSHIP NO", "PAYABLE AMT."). Headers are
normalized first, then looked up through an alias table, so one loader
reads both the clinic's billing report and each provider's remittance
advice.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ValidationError

from reconciliation.normalizer import from_cents, normalize_date, to_cents
from schemas.reconciliation import ClaimRowIn, RemittanceRowIn

logger = logging.getLogger(__name__)

# Normalized header aliases, first non-empty cell wins
MEMBER_ALIASES = ("member_number", "membership_no", "member_no", "member_id")
CLAIM_DATE_ALIASES = ("service_date", "billing_date", "loss_date")
REMITTANCE_DATE_ALIASES = ("service_date", "loss_date", "billing_date")

CLAIM_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "patient_name": ("patient_name",),
    "invoice_number": ("invoice_number", "invoice_no"),
    "claim_type": ("claim_type",),
    "scheme_name": ("scheme_name",),
    "benefit_desc": ("benefit_description", "benefit_desc", "benefit"),
    "currency": ("currency",),
}
CLAIM_AMOUNT_ALIASES = ("billed_amount", "amount")

REMITTANCE_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "employer_name": ("employer_name", "employer", "corporate_name"),
    "patient_name": ("patient_name", "member_name"),
    "bill_no": ("bill_no", "bill_number"),
    "invoice_number": ("invoice_number", "invoice_no"),
    "claim_number": ("claim_number", "claim_no"),
    "relationship": ("relationship",),
    "payment_no": ("payment_no", "payment_number", "cheque_eft_no"),
    "payment_mode": ("payment_mode", "mode"),
}
CLAIMED_AMOUNT_ALIASES = ("claim_amount", "claimed_amount", "amount")
PAID_AMOUNT_ALIASES = ("paid_amount", "amount_paid", "payable_amt", "payable_amount")


@dataclass
class SkippedRow:
    """A data row that could not be turned into a claim or remittance line."""

    line: int
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "reason": self.reason}


@dataclass
class ParsedRows:
    rows: list[Any] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)


def normalize_header(name: str | None) -> str:
    """Normalize a header (lowercase, underscores).

    >>> normalize_header("PAYABLE AMT.")
    'payable_amt'
    >>> normalize_header("Cheque/EFT No")
    'cheque_eft_no'
    """
    if not name:
        return "unnamed"

    normalized = ""
    for char in name.strip():
        if char.isalnum():
            normalized += char.lower()
        elif char in " -_/":
            normalized += "_"

    while "__" in normalized:
        normalized = normalized.replace("__", "_")

    return normalized.strip("_") or "unnamed"


def _cell(record: dict[str, str], aliases: tuple[str, ...]) -> str | None:
    for alias in aliases:
        value = record.get(alias)
        if value is not None and value.strip():
            return value.strip()
    return None


def _read_records(text: str) -> Iterator[tuple[int, dict[str, str]]]:
    """Yield (line number, normalized record) for each data row."""
    reader = csv.DictReader(io.StringIO(text))
    for row in reader:
        record: dict[str, str] = {}
        for key, value in row.items():
            if key is None or value is None:
                continue
            normalized = normalize_header(key)
            # Keep the first column when two headers normalize alike
            if normalized not in record or not record[normalized].strip():
                record[normalized] = value if isinstance(value, str) else ""
        yield reader.line_num, record


def _amount(raw: str | None) -> float:
    return from_cents(to_cents(raw))


def _validate(
    model: type[BaseModel], data: dict[str, Any], line: int, parsed: ParsedRows
) -> None:
    try:
        parsed.rows.append(model(**data).to_row())  # type: ignore[attr-defined]
    except ValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        parsed.skipped.append(SkippedRow(line, reasons))


def _load(
    text: str,
    kind: str,
    date_aliases: tuple[str, ...],
    build: Callable[[dict[str, str], int, ParsedRows], None],
) -> ParsedRows:
    parsed = ParsedRows()

    for line, record in _read_records(text):
        member = _cell(record, MEMBER_ALIASES)
        raw_date = _cell(record, date_aliases)

        # Blank spreadsheet rows
        if not member and not raw_date:
            continue
        if not raw_date:
            parsed.skipped.append(SkippedRow(line, "missing service date"))
            continue
        if not normalize_date(raw_date):
            parsed.skipped.append(
                SkippedRow(line, f"unreadable service date {raw_date!r}")
            )
            continue

        build(record, line, parsed)

    if parsed.skipped:
        logger.warning(
            f"Skipped {len(parsed.skipped)} {kind} rows; "
            f"first at line {parsed.skipped[0].line}: {parsed.skipped[0].reason}"
        )
    return parsed


def _build_claim(record: dict[str, str], line: int, parsed: ParsedRows) -> None:
    raw_billed = _cell(record, CLAIM_AMOUNT_ALIASES)
    if raw_billed is None or not any(ch.isdigit() for ch in raw_billed):
        parsed.skipped.append(SkippedRow(line, "billed amount missing"))
        return
    # Zero is kept; a zero-billed claim is routed to manual review
    billed = _amount(raw_billed)
    if billed < 0:
        parsed.skipped.append(SkippedRow(line, "billed amount is negative"))
        return

    data: dict[str, Any] = {
        name: _cell(record, aliases) for name, aliases in CLAIM_FIELD_ALIASES.items()
    }
    data.update(
        member_number=_cell(record, MEMBER_ALIASES) or "",
        service_date=_cell(record, CLAIM_DATE_ALIASES),
        billed_amount=billed,
    )
    _validate(ClaimRowIn, data, line, parsed)


def _build_remittance(record: dict[str, str], line: int, parsed: ParsedRows) -> None:
    claimed = _amount(_cell(record, CLAIMED_AMOUNT_ALIASES))
    paid = _amount(_cell(record, PAID_AMOUNT_ALIASES))
    if claimed <= 0 and paid <= 0:
        parsed.skipped.append(SkippedRow(line, "no claim or paid amount"))
        return

    data: dict[str, Any] = {
        name: _cell(record, aliases)
        for name, aliases in REMITTANCE_FIELD_ALIASES.items()
    }
    data.update(
        member_number=_cell(record, MEMBER_ALIASES) or "",
        service_date=_cell(record, REMITTANCE_DATE_ALIASES),
        claim_amount=claimed,
        paid_amount=paid,
    )
    _validate(RemittanceRowIn, data, line, parsed)


def load_claim_rows(text: str) -> ParsedRows:
    """Parse a claims export into ClaimRow objects.

    Args:
        text: CSV content with a header row

    Returns:
        ParsedRows with ``rows`` (ClaimRow) and the data rows that were skipped
    """
    return _load(text, "claim", CLAIM_DATE_ALIASES, _build_claim)


def load_remittance_rows(text: str) -> ParsedRows:
    """Parse a remittance advice export into RemittanceRow objects."""
    return _load(text, "remittance", REMITTANCE_DATE_ALIASES, _build_remittance)

