"""Period and run orchestration.

Staged workflow per insurance provider:

    1. upsert_claims_for_period      - what the clinic billed
    2. upsert_remittance_for_period  - what the provider paid
    3. run_claim_reconciliation      - match, classify and record a run

Every operation is a single transaction; runs for one provider are
serialized by a per-provider lock.
"""

from __future__ import annotations

import logging
import math
import sqlite3
import threading
from typing import TYPE_CHECKING, Any, Sequence

from .errors import (
    ClaimNotFoundError,
    EmptyUploadError,
    InvalidLinkError,
    InvalidPeriodError,
    NoClaimsForProviderError,
    NoOutstandingClaimsError,
    NoRemittanceLinesError,
    PreconditionError,
    RemittanceNotFoundError,
    RunNotFoundError,
)
from .keys import build_remittance_key_variants, remittance_fingerprint
from .ledger import OutstandingClaimLedger
from .matcher import match_claims_to_remittances, settle_claim
from .models import ClaimRow, MatchMethod, MatchResult, ReconciliationSummary, RemittanceRow
from .status import ClaimStatus, coerce_status, is_outstanding
from .tolerances import MatchingConfig

if TYPE_CHECKING:
    from storage.store import ReconciliationStore

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "SSP"
MAX_PAGE_SIZE = 500

ISSUE_STATUSES = frozenset(
    {ClaimStatus.PARTIALLY_PAID, ClaimStatus.UNPAID, ClaimStatus.MANUAL_REVIEW}
)

_provider_locks: dict[str, threading.Lock] = {}
_provider_locks_guard = threading.Lock()


def _provider_lock(provider_name: str) -> threading.Lock:
    with _provider_locks_guard:
        lock = _provider_locks.get(provider_name)
        if lock is None:
            lock = _provider_locks[provider_name] = threading.Lock()
        return lock


def _validate_provider(provider_name: str) -> str:
    name = (provider_name or "").strip()
    if not name:
        raise PreconditionError("Provider name is required")
    return name


def _validate_period(period_year: Any, period_month: Any) -> None:
    valid = (
        isinstance(period_year, int)
        and not isinstance(period_year, bool)
        and isinstance(period_month, int)
        and not isinstance(period_month, bool)
        and 1900 <= period_year <= 2100
        and 1 <= period_month <= 12
    )
    if not valid:
        raise InvalidPeriodError(period_year, period_month)


class ReconciliationService:
    """Entry point for uploads, runs, manual links and queries."""

    def __init__(
        self,
        store: ReconciliationStore,
        config: MatchingConfig | None = None,
        default_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self.store = store
        self.config = config or MatchingConfig()
        self.default_currency = default_currency
        self.ledger = OutstandingClaimLedger(store)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def upsert_claims_for_period(
        self,
        provider_name: str,
        period_year: int,
        period_month: int,
        rows: Sequence[ClaimRow],
    ) -> dict[str, Any]:
        """Stage the claims billed to a provider for one filing period.

        Re-uploading a period replaces the claims still awaiting payment;
        claims a run has settled are kept for audit.
        """
        provider_name = _validate_provider(provider_name)
        _validate_period(period_year, period_month)
        if not rows:
            raise EmptyUploadError("claim")

        with _provider_lock(provider_name), self.store.transaction() as conn:
            replaced = self.store.delete_standalone_claims(
                conn, provider_name, period_year, period_month
            )
            claim_ids = self.store.insert_claims(
                conn,
                provider_name,
                period_year,
                period_month,
                rows,
                self.default_currency,
            )

        logger.info(
            f"Stored {len(claim_ids)} claims for {provider_name} "
            f"{period_year}-{period_month:02d} (replaced {replaced})"
        )
        return {
            "provider_name": provider_name,
            "period_year": period_year,
            "period_month": period_month,
            "inserted": len(claim_ids),
            "replaced": replaced,
            "claim_ids": claim_ids,
        }

    def upsert_remittance_for_period(
        self,
        provider_name: str,
        period_year: int,
        period_month: int,
        rows: Sequence[RemittanceRow],
    ) -> dict[str, Any]:
        """Stage a provider's remittance advice for one filing period.

        Re-uploading a period replaces every line not yet linked to a claim,
        orphans included. Lines identical to one a run already linked are
        skipped so the same payment is never applied twice.
        """
        provider_name = _validate_provider(provider_name)
        _validate_period(period_year, period_month)
        if not rows:
            raise EmptyUploadError("remittance")

        with _provider_lock(provider_name), self.store.transaction() as conn:
            if not self.store.provider_has_claims(conn, provider_name):
                raise NoClaimsForProviderError(provider_name)

            replaced = self.store.delete_standalone_remittances(
                conn, provider_name, period_year, period_month
            )
            fresh, already_linked = self._drop_linked_duplicates(
                conn, provider_name, period_year, period_month, rows
            )
            remittance_ids = self.store.insert_remittances(
                conn, provider_name, period_year, period_month, fresh
            )

        logger.info(
            f"Stored {len(remittance_ids)} remittance lines for {provider_name} "
            f"{period_year}-{period_month:02d} (replaced {replaced}, "
            f"already linked {already_linked})"
        )
        return {
            "provider_name": provider_name,
            "period_year": period_year,
            "period_month": period_month,
            "inserted": len(remittance_ids),
            "replaced": replaced,
            "already_linked": already_linked,
            "remittance_ids": remittance_ids,
        }

    def _drop_linked_duplicates(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
        rows: Sequence[RemittanceRow],
    ) -> tuple[list[RemittanceRow], int]:
        # Each linked line absorbs one identical incoming row
        linked = self.store.linked_remittance_fingerprints(
            conn, provider_name, period_year, period_month
        )
        fresh: list[RemittanceRow] = []
        skipped = 0
        for row in rows:
            fingerprint = remittance_fingerprint(
                build_remittance_key_variants(row)[0], row.payment_no, row.paid_amount
            )
            if linked[fingerprint] > 0:
                linked[fingerprint] -= 1
                skipped += 1
                continue
            fresh.append(row)
        return fresh, skipped

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_claim_reconciliation(
        self,
        provider_name: str,
        period_year: int,
        period_month: int,
        created_by: str | None = None,
    ) -> ReconciliationSummary:
        """Match a provider's outstanding claims against one remittance period.

        Claims are drawn from every upload period, since providers often
        pay months late. Remittance lines are those of the given period
        that have no claim yet, including orphans from earlier runs.

        Raises:
            NoOutstandingClaimsError: nothing is awaiting payment
            NoRemittanceLinesError: the period has no unmatched lines
        """
        provider_name = _validate_provider(provider_name)
        _validate_period(period_year, period_month)

        with _provider_lock(provider_name), self.store.transaction() as conn:
            claims = self.ledger.select_outstanding(conn, provider_name)
            if not claims:
                raise NoOutstandingClaimsError(provider_name)

            remittances = self.store.fetch_remittances(
                conn,
                provider_name=provider_name,
                period_year=period_year,
                period_month=period_month,
                unmatched_only=True,
            )
            if not remittances:
                raise NoRemittanceLinesError(provider_name, period_year, period_month)

            run_id = self.store.create_run(
                conn, provider_name, period_year, period_month, created_by
            )
            outcome = match_claims_to_remittances(claims, remittances, self.config)

            claims_by_id = {claim.id: claim for claim in claims}
            for result in outcome.results:
                self.ledger.apply(conn, claims_by_id[result.claim_id], result, run_id)
                if result.matched:
                    self.store.link_remittance(conn, result, run_id)

            for orphan in outcome.orphans:
                self.store.mark_orphan(conn, orphan.id, run_id)

            self.store.insert_run_claims(conn, run_id, outcome.results)

            summary = ReconciliationSummary.from_outcome(
                outcome, total_remittances=len(remittances), run_id=run_id
            )
            self.store.finalize_run(conn, run_id, summary)

        logger.info(
            f"Reconciliation run {run_id} for {provider_name} "
            f"{period_year}-{period_month:02d}: {summary.claims_matched} of "
            f"{summary.total_claims_searched} claims matched, "
            f"{summary.orphan_remittances} orphan lines"
        )
        return summary

    def link_remittance_manually(
        self,
        claim_id: int,
        remittance_id: int,
        actor: str | None = None,
    ) -> MatchResult:
        """Operator pairing of an orphan remittance line with a claim."""
        with self.store.connection() as conn:
            claim = self.store.get_claim(conn, claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)

        with _provider_lock(claim.provider_name), self.store.transaction() as conn:
            # Re-read under the lock; a run may have settled either side
            claim = self.store.get_claim(conn, claim_id)
            if claim is None:
                raise ClaimNotFoundError(claim_id)
            remittance = self.store.get_remittance(conn, remittance_id)
            if remittance is None:
                raise RemittanceNotFoundError(remittance_id)

            if remittance.matched_claim_id is not None:
                raise InvalidLinkError(
                    f"Remittance line {remittance_id} is already linked to "
                    f"claim {remittance.matched_claim_id}"
                )
            if not is_outstanding(claim.status):
                raise InvalidLinkError(
                    f"Claim {claim_id} is already {claim.status.value} "
                    "and cannot take another payment"
                )
            if claim.provider_name != remittance.provider_name:
                raise InvalidLinkError(
                    f"Claim {claim_id} belongs to {claim.provider_name} but "
                    f"remittance line {remittance_id} belongs to "
                    f"{remittance.provider_name}"
                )

            result = settle_claim(
                claim,
                remittance,
                MatchMethod.MANUAL,
                accumulate_payments=self.config.accumulate_payments,
            )
            run_id = remittance.run_id if remittance.run_id is not None else claim.run_id
            self.ledger.apply(conn, claim, result, run_id)
            self.store.link_remittance(conn, result, run_id)

        logger.info(
            f"Remittance line {remittance_id} linked to claim {claim_id} "
            f"by {actor or 'unknown'}: {result.status.value}"
        )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_run(self, run_id: int) -> dict[str, Any]:
        with self.store.connection() as conn:
            run = self.store.get_run(conn, run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def list_runs(self, provider_name: str | None = None) -> list[dict[str, Any]]:
        with self.store.connection() as conn:
            return self.store.list_runs(conn, provider_name)

    def get_run_claims(self, run_id: int) -> list[dict[str, Any]]:
        """Per-claim history recorded by a run."""
        with self.store.connection() as conn:
            if self.store.get_run(conn, run_id) is None:
                raise RunNotFoundError(run_id)
            return self.store.get_run_claims(conn, run_id)

    def get_claims_for_period(
        self, provider_name: str, period_year: int, period_month: int
    ) -> list[dict[str, Any]]:
        _validate_period(period_year, period_month)
        with self.store.connection() as conn:
            claims = self.store.fetch_claims(
                conn,
                provider_name=provider_name,
                period_year=period_year,
                period_month=period_month,
            )
        return [claim.to_dict() for claim in claims]

    def get_remittance_for_period(
        self, provider_name: str, period_year: int, period_month: int
    ) -> list[dict[str, Any]]:
        _validate_period(period_year, period_month)
        with self.store.connection() as conn:
            lines = self.store.fetch_remittances(
                conn,
                provider_name=provider_name,
                period_year=period_year,
                period_month=period_month,
            )
        return [line.to_dict() for line in lines]

    def list_claims(
        self,
        provider_name: str | None = None,
        status: str | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Filtered, paginated claim listing."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        statuses = None
        if status:
            try:
                statuses = [coerce_status(status)]
            except ValueError as e:
                raise PreconditionError(f"Unknown claim status: {status}") from e

        filters: dict[str, Any] = {
            "provider_name": provider_name,
            "statuses": statuses,
            "period_year": period_year,
            "period_month": period_month,
        }
        with self.store.connection() as conn:
            total = self.store.count_claims(conn, **filters)
            claims = self.store.fetch_claims(
                conn, limit=limit, offset=(page - 1) * limit, **filters
            )

        return {
            "claims": [claim.to_dict() for claim in claims],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    def get_issue_claims(self, provider_name: str | None = None) -> list[dict[str, Any]]:
        """Claims that were paid short, not paid, or need a human look."""
        with self.store.connection() as conn:
            claims = self.store.fetch_claims(
                conn, provider_name=provider_name, statuses=ISSUE_STATUSES
            )
        return [claim.to_dict() for claim in claims]

    def list_orphan_remittances(
        self, provider_name: str | None = None
    ) -> list[dict[str, Any]]:
        with self.store.connection() as conn:
            lines = self.store.fetch_remittances(
                conn, provider_name=provider_name, orphans_only=True
            )
        return [line.to_dict() for line in lines]

    def get_periods_summary(self, provider_name: str | None = None) -> list[dict[str, Any]]:
        with self.store.connection() as conn:
            return self.store.periods_summary(conn, provider_name)

    # ------------------------------------------------------------------
    # Purges
    # ------------------------------------------------------------------

    def delete_claim(self, claim_id: int) -> None:
        with self.store.transaction() as conn:
            if not self.store.delete_claim(conn, claim_id):
                raise ClaimNotFoundError(claim_id)
        logger.info(f"Deleted claim {claim_id}")

    def delete_claims_for_period(
        self, provider_name: str, period_year: int, period_month: int
    ) -> int:
        provider_name = _validate_provider(provider_name)
        _validate_period(period_year, period_month)
        with _provider_lock(provider_name), self.store.transaction() as conn:
            deleted = self.store.delete_claims_for_period(
                conn, provider_name, period_year, period_month
            )
        logger.info(
            f"Deleted {deleted} claims for {provider_name} "
            f"{period_year}-{period_month:02d}"
        )
        return deleted

    def delete_run(self, run_id: int) -> None:
        with self.store.transaction() as conn:
            if not self.store.delete_run(conn, run_id):
                raise RunNotFoundError(run_id)
        logger.info(f"Deleted reconciliation run {run_id}")
