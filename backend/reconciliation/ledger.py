"""Outstanding-claim ledger.

Selects which claims a run may consider and writes run results back,
refusing any status change the lifecycle does not allow.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from .models import ClaimRecord, MatchResult
from .status import OUTSTANDING_STATUSES, ClaimStatus, validate_transition

if TYPE_CHECKING:
    from storage.store import ReconciliationStore

logger = logging.getLogger(__name__)


class OutstandingClaimLedger:
    """Read and update claims that are still waiting for money."""

    def __init__(self, store: ReconciliationStore) -> None:
        self.store = store

    def select_outstanding(
        self, conn: sqlite3.Connection, provider_name: str
    ) -> list[ClaimRecord]:
        """Every outstanding claim for the provider, from any upload period."""
        return self.store.fetch_claims(
            conn, provider_name=provider_name, statuses=OUTSTANDING_STATUSES
        )

    def apply(
        self,
        conn: sqlite3.Connection,
        claim: ClaimRecord,
        result: MatchResult,
        run_id: int | None,
    ) -> None:
        if not result.matched:
            if claim.status is None:
                self.store.set_claim_status(conn, claim.id, ClaimStatus.AWAITING_PAYMENT)
            return

        validate_transition(claim.status, result.status, claim.id)
        self.store.settle_claim(conn, result, run_id)
        logger.debug(
            f"Claim {claim.id} -> {result.status.value} "
            f"(remittance {result.remittance_id})"
        )
