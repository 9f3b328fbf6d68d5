"""Claim payment status model and classification."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import InvalidTransitionError


class ClaimStatus(str, Enum):
    """Lifecycle status of a submitted claim."""

    AWAITING_PAYMENT = "awaiting-payment"
    MATCHED = "matched"
    PAID = "paid"  # legacy settled value, read-only
    PARTIALLY_PAID = "partially-paid"
    UNPAID = "unpaid"
    MANUAL_REVIEW = "manual-review"


class MatchType(str, Enum):
    """How closely a remittance line's payment agrees with the claim."""

    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


OUTSTANDING_STATUSES = frozenset(
    {
        ClaimStatus.AWAITING_PAYMENT,
        ClaimStatus.UNPAID,
        ClaimStatus.PARTIALLY_PAID,
        ClaimStatus.MANUAL_REVIEW,
    }
)
SETTLED_STATUSES = frozenset({ClaimStatus.MATCHED, ClaimStatus.PAID})

# Values written by older releases of the schema
_LEGACY_ALIASES = {
    "awaiting_remittance": ClaimStatus.AWAITING_PAYMENT,
    "awaiting_payment": ClaimStatus.AWAITING_PAYMENT,
    "submitted": ClaimStatus.AWAITING_PAYMENT,
    "partially_paid": ClaimStatus.PARTIALLY_PAID,
    "manual_review": ClaimStatus.MANUAL_REVIEW,
}


def coerce_status(value: ClaimStatus | str | None) -> ClaimStatus | None:
    """Read a stored status value, accepting legacy spellings.

    Empty values return None so callers can tell "never set" apart from
    an explicit status.
    """
    if value is None or value == "":
        return None
    if isinstance(value, ClaimStatus):
        return value
    legacy = _LEGACY_ALIASES.get(value)
    if legacy is not None:
        return legacy
    return ClaimStatus(value)


def is_outstanding(status: ClaimStatus | str | None) -> bool:
    """Whether a claim with this status is still eligible for matching."""
    coerced = coerce_status(status)
    return coerced is None or coerced in OUTSTANDING_STATUSES


def can_transition(current: ClaimStatus | None, new: ClaimStatus) -> bool:
    """Check a single status move.

    Outstanding claims may move to any outstanding status or to matched
    in one step. Settled claims never move. ``paid`` is never a target.
    """
    if new is ClaimStatus.PAID:
        return False
    if current is None or current in OUTSTANDING_STATUSES:
        return new in OUTSTANDING_STATUSES or new is ClaimStatus.MATCHED
    return False


def validate_transition(
    current: ClaimStatus | None, new: ClaimStatus, claim_id: int | None = None
) -> None:
    """Raise InvalidTransitionError when ``current -> new`` is not allowed."""
    if not can_transition(current, new):
        raise InvalidTransitionError(current, new, claim_id)


@dataclass(frozen=True)
class PaymentClassification:
    status: ClaimStatus
    match_type: MatchType
    overpaid: bool = False


def classify_payment(billed_cents: int, paid_cents: int) -> PaymentClassification:
    """Classify a pairing from billed and paid amounts in minor units.

    Evaluated top to bottom, first match wins:

    - paid == billed          -> matched, exact
    - 0 < paid < billed       -> partially-paid, partial
    - paid == 0               -> unpaid, partial
    - paid > billed           -> matched, partial, overpaid
    - billed <= 0 (or junk)   -> manual-review, partial
    """
    if billed_cents > 0:
        if paid_cents == billed_cents:
            return PaymentClassification(ClaimStatus.MATCHED, MatchType.EXACT)
        if 0 < paid_cents < billed_cents:
            return PaymentClassification(ClaimStatus.PARTIALLY_PAID, MatchType.PARTIAL)
        if paid_cents == 0:
            return PaymentClassification(ClaimStatus.UNPAID, MatchType.PARTIAL)
        if paid_cents > billed_cents:
            return PaymentClassification(
                ClaimStatus.MATCHED, MatchType.PARTIAL, overpaid=True
            )
    return PaymentClassification(ClaimStatus.MANUAL_REVIEW, MatchType.PARTIAL)
