"""Composite matching keys for claims and remittance lines.

A claim has exactly one key. A remittance line has an ordered list of
acceptable variants; the matcher takes the first variant that finds an
unconsumed claim. Invoice/bill references always win over the
date+amount fallback.
"""

from __future__ import annotations

from operator import attrgetter
from typing import Any, Callable, Iterable

from .models import ClaimRow, MatchMethod, RemittanceRow
from .normalizer import normalize_date, normalize_invoice, normalize_member, to_cents

INVOICE_PREFIX = "INV:"
DATE_PREFIX = "DATE:"
AMOUNT_PREFIX = "AMT:"

# Minor-unit offsets tried for the date+amount fallback, in order
DEFAULT_AMOUNT_DELTAS: tuple[int, ...] = (0, 100, -100, 200, -200)

# Bill-reference fields on a remittance line, highest priority first.
# The provider's bill number is the reference that lines up with the
# claim's invoice number; invoice and claim numbers are fallbacks.
REMITTANCE_REFERENCE_ACCESSORS: tuple[Callable[[RemittanceRow], Any], ...] = (
    attrgetter("bill_no"),
    attrgetter("invoice_number"),
    attrgetter("claim_number"),
)


def _invoice_key(member: str, invoice: str) -> str:
    return f"{member}|{INVOICE_PREFIX}{invoice}"


def _date_amount_key(member: str, service_date: str, cents: int) -> str:
    return f"{member}|{DATE_PREFIX}{service_date}|{AMOUNT_PREFIX}{cents}"


def build_claim_key(claim: ClaimRow) -> str:
    """Single composite key for a claim."""
    member = normalize_member(claim.member_number)
    invoice = normalize_invoice(claim.invoice_number)
    if invoice:
        return _invoice_key(member, invoice)
    return _date_amount_key(
        member, normalize_date(claim.service_date), to_cents(claim.billed_amount)
    )


def remittance_references(remittance: RemittanceRow) -> list[str]:
    """Normalized, non-empty bill references in accessor priority order."""
    references: list[str] = []
    for accessor in REMITTANCE_REFERENCE_ACCESSORS:
        reference = normalize_invoice(accessor(remittance))
        if reference and reference not in references:
            references.append(reference)
    return references


def build_remittance_key_variants(
    remittance: RemittanceRow,
    amount_deltas: Iterable[int] = DEFAULT_AMOUNT_DELTAS,
) -> list[str]:
    """Ordered key variants a remittance line may match on."""
    member = normalize_member(remittance.member_number)

    references = remittance_references(remittance)
    if references:
        return [_invoice_key(member, reference) for reference in references]

    service_date = normalize_date(remittance.service_date)
    base_cents = to_cents(remittance.claim_amount)
    variants: list[str] = []
    for delta in amount_deltas:
        key = _date_amount_key(member, service_date, base_cents + delta)
        if key not in variants:
            variants.append(key)
    return variants


def match_method_for_key(key: str) -> MatchMethod:
    if f"|{INVOICE_PREFIX}" in key:
        return MatchMethod.INVOICE
    return MatchMethod.DATE_AMOUNT


def remittance_fingerprint(
    composite_key: str, payment_no: str | None, paid_amount: Any
) -> tuple[str, str, int]:
    """Identity of one payment, used to spot a statement uploaded twice."""
    return composite_key, (payment_no or "").strip(), to_cents(paid_amount)
