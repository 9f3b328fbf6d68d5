"""Claim/remittance matching.

Pairs each remittance line with at most one claim and each claim with at
most one line. Several claims may share a key (same member, date and
amount); they queue up under that key and are consumed in input order.
All state lives inside a single call.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Sequence

from .keys import build_claim_key, build_remittance_key_variants, match_method_for_key
from .models import (
    ClaimRecord,
    MatchMethod,
    MatchOutcome,
    MatchResult,
    RemittanceRecord,
)
from .normalizer import from_cents, to_cents
from .status import ClaimStatus, MatchType, classify_payment
from .tolerances import MatchingConfig

logger = logging.getLogger(__name__)


def settle_claim(
    claim: ClaimRecord,
    remittance: RemittanceRecord,
    match_method: MatchMethod,
    accumulate_payments: bool = True,
) -> MatchResult:
    """Classify a single claim/remittance pairing.

    With ``accumulate_payments`` the line's paid amount is added to what
    the claim had already received, so a second installment can settle a
    partially-paid claim.
    """
    prior_cents = to_cents(claim.amount_paid) if accumulate_payments else 0
    line_cents = to_cents(remittance.row.paid_amount)
    paid_cents = prior_cents + line_cents

    classification = classify_payment(to_cents(claim.row.billed_amount), paid_cents)

    return MatchResult(
        claim_id=claim.id,
        remittance_id=remittance.id,
        match_type=classification.match_type,
        amount_paid=from_cents(paid_cents),
        status=classification.status,
        match_method=match_method,
        overpaid=classification.overpaid,
        status_before=claim.status,
        amount_paid_in_run=from_cents(line_cents),
    )


def _outstanding_result(claim: ClaimRecord) -> MatchResult:
    return MatchResult(
        claim_id=claim.id,
        remittance_id=None,
        match_type=MatchType.NONE,
        amount_paid=claim.amount_paid,
        status=claim.status or ClaimStatus.AWAITING_PAYMENT,
        status_before=claim.status,
    )


def _take_claim(
    queues: dict[str, deque[ClaimRecord]],
    variants: list[str],
    consumed: set[int],
) -> tuple[ClaimRecord | None, str | None]:
    for key in variants:
        queue = queues.get(key)
        while queue:
            candidate = queue.popleft()
            if candidate.id not in consumed:
                return candidate, key
    return None, None


def match_claims_to_remittances(
    claims: Sequence[ClaimRecord],
    remittances: Sequence[RemittanceRecord],
    config: MatchingConfig | None = None,
) -> MatchOutcome:
    """Match a provider's outstanding claims against a batch of remittance lines.

    Returns one result per claim (in input order) plus the remittance
    lines that found no claim. Never raises for data problems.
    """
    config = config or MatchingConfig()

    queues: dict[str, deque[ClaimRecord]] = defaultdict(deque)
    for claim in claims:
        queues[build_claim_key(claim.row)].append(claim)

    consumed: set[int] = set()
    settled: dict[int, MatchResult] = {}
    orphans: list[RemittanceRecord] = []

    for remittance in remittances:
        variants = build_remittance_key_variants(remittance.row, config.amount_deltas)
        claim, key = _take_claim(queues, variants, consumed)
        if claim is None or key is None:
            orphans.append(remittance)
            continue

        consumed.add(claim.id)
        settled[claim.id] = settle_claim(
            claim,
            remittance,
            match_method_for_key(key),
            accumulate_payments=config.accumulate_payments,
        )

    results = [settled.get(claim.id) or _outstanding_result(claim) for claim in claims]

    logger.debug(
        f"Matched {len(settled)} of {len(claims)} claims; "
        f"{len(orphans)} of {len(remittances)} remittance lines orphaned"
    )

    return MatchOutcome(results=results, orphans=orphans)
