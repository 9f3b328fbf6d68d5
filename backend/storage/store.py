"""SQLite persistence for claims, remittance lines and reconciliation runs.

Usage:
    store = ReconciliationStore(db_path)
    with store.transaction() as conn:
        ids = store.insert_claims(conn, "CIC", 2025, 8, rows, "SSP")
    with store.connection() as conn:
        claims = store.fetch_claims(conn, provider_name="CIC")

Every write goes through ``transaction()`` so a failure anywhere in an
upload or a run leaves the database untouched.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from collections import Counter
from typing import Any, Iterable, Iterator

from reconciliation.keys import (
    build_claim_key,
    build_remittance_key_variants,
    remittance_fingerprint,
)
from reconciliation.models import (
    ORPHAN_STATUS,
    ClaimRecord,
    ClaimRow,
    MatchMethod,
    MatchResult,
    ReconciliationSummary,
    RemittanceRecord,
    RemittanceRow,
)
from reconciliation.normalizer import normalize_date
from reconciliation.status import ClaimStatus, MatchType, coerce_status

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _optional_enum(enum_cls: Any, value: str | None) -> Any:
    return enum_cls(value) if value else None


def _claim_from_row(row: sqlite3.Row) -> ClaimRecord:
    return ClaimRecord(
        id=row["id"],
        row=ClaimRow(
            member_number=row["member_number"],
            service_date=row["service_date"],
            billed_amount=row["billed_amount"],
            patient_name=row["patient_name"],
            invoice_number=row["invoice_number"],
            claim_type=row["claim_type"],
            scheme_name=row["scheme_name"],
            benefit_desc=row["benefit_desc"],
            currency=row["currency"],
        ),
        provider_name=row["provider_name"],
        period_year=row["period_year"],
        period_month=row["period_month"],
        status=coerce_status(row["status"]),
        amount_paid=row["amount_paid"] or 0.0,
        remittance_line_id=row["remittance_line_id"],
        match_method=_optional_enum(MatchMethod, row["match_method"]),
        overpaid=bool(row["overpaid"]),
        run_id=row["run_id"],
        composite_key=row["composite_key"],
        created_at=row["created_at"],
    )


def _remittance_from_row(row: sqlite3.Row) -> RemittanceRecord:
    return RemittanceRecord(
        id=row["id"],
        row=RemittanceRow(
            member_number=row["member_number"],
            service_date=row["service_date"],
            claim_amount=row["claim_amount"],
            paid_amount=row["paid_amount"],
            employer_name=row["employer_name"],
            patient_name=row["patient_name"],
            bill_no=row["bill_no"],
            invoice_number=row["invoice_number"],
            claim_number=row["claim_number"],
            relationship=row["relationship"],
            payment_no=row["payment_no"],
            payment_mode=row["payment_mode"],
        ),
        provider_name=row["provider_name"],
        period_year=row["period_year"],
        period_month=row["period_month"],
        matched_claim_id=row["matched_claim_id"],
        match_type=_optional_enum(MatchType, row["match_type"]),
        match_method=_optional_enum(MatchMethod, row["match_method"]),
        status=row["status"],
        run_id=row["run_id"],
        composite_key=row["composite_key"],
        created_at=row["created_at"],
    )


def _where(conditions: list[str]) -> str:
    return " AND ".join(conditions) if conditions else "1=1"


class ReconciliationStore:
    """Storage for the staged claims -> remittance -> run workflow.

    Attributes:
        db_path: Path to the SQLite database
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._init_tables()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transaction() issues BEGIN/COMMIT itself
        conn = sqlite3.connect(
            self.db_path, timeout=30, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Connection for read-only queries."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """All-or-nothing unit of work.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so two runs that
        read the same outstanding claims cannot interleave their writes.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def _init_tables(self) -> None:
        """Initialize database tables if they don't exist."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recon_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider_name TEXT NOT NULL,
                    period_year INTEGER NOT NULL,
                    period_month INTEGER NOT NULL,
                    created_by TEXT,
                    created_at TEXT NOT NULL,
                    total_claims_searched INTEGER DEFAULT 0,
                    total_remittance_rows INTEGER DEFAULT 0,
                    auto_matched INTEGER DEFAULT 0,
                    partial_matched INTEGER DEFAULT 0,
                    manual_review INTEGER DEFAULT 0,
                    orphan_count INTEGER DEFAULT 0,
                    unpaid_count INTEGER DEFAULT 0,
                    claims_matched INTEGER DEFAULT 0,
                    overpaid_count INTEGER DEFAULT 0
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS recon_claims (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER,
                    provider_name TEXT NOT NULL,
                    period_year INTEGER NOT NULL,
                    period_month INTEGER NOT NULL,
                    member_number TEXT NOT NULL,
                    patient_name TEXT,
                    service_date TEXT,
                    invoice_number TEXT,
                    claim_type TEXT,
                    scheme_name TEXT,
                    benefit_desc TEXT,
                    billed_amount REAL NOT NULL,
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'awaiting-payment',
                    amount_paid REAL NOT NULL DEFAULT 0,
                    remittance_line_id INTEGER,
                    match_method TEXT,
                    overpaid INTEGER NOT NULL DEFAULT 0,
                    composite_key TEXT NOT NULL,
                    raw_row TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS recon_remittances (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER,
                    provider_name TEXT NOT NULL,
                    period_year INTEGER NOT NULL,
                    period_month INTEGER NOT NULL,
                    employer_name TEXT,
                    patient_name TEXT,
                    member_number TEXT NOT NULL,
                    bill_no TEXT,
                    invoice_number TEXT,
                    claim_number TEXT,
                    relationship TEXT,
                    service_date TEXT,
                    claim_amount REAL NOT NULL,
                    paid_amount REAL NOT NULL,
                    payment_no TEXT,
                    payment_mode TEXT,
                    composite_key TEXT NOT NULL,
                    matched_claim_id INTEGER,
                    match_type TEXT,
                    match_method TEXT,
                    status TEXT,
                    raw_row TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS recon_run_claims (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id INTEGER NOT NULL,
                    claim_id INTEGER NOT NULL,
                    status_before_run TEXT,
                    status_after_run TEXT NOT NULL,
                    matched_remittance_id INTEGER,
                    match_type TEXT,
                    match_method TEXT,
                    amount_paid_in_run REAL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    UNIQUE (run_id, claim_id),
                    FOREIGN KEY (run_id) REFERENCES recon_runs(id)
                )
            """)

            # Indices for the provider/period and outstanding-status lookups
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_claims_provider_period "
                "ON recon_claims(provider_name, period_year, period_month)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_claims_provider_status "
                "ON recon_claims(provider_name, status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_remittances_provider_period "
                "ON recon_remittances(provider_name, period_year, period_month)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_remittances_status "
                "ON recon_remittances(status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_run_claims_run "
                "ON recon_run_claims(run_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_run_claims_claim "
                "ON recon_run_claims(claim_id)"
            )

        logger.info("Reconciliation tables initialized")

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def insert_claims(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
        rows: Iterable[ClaimRow],
        default_currency: str,
    ) -> list[int]:
        created_at = _now()
        ids: list[int] = []
        for row in rows:
            cursor = conn.execute(
                """
                INSERT INTO recon_claims (
                    provider_name, period_year, period_month,
                    member_number, patient_name, service_date, invoice_number,
                    claim_type, scheme_name, benefit_desc,
                    billed_amount, currency, status, amount_paid,
                    composite_key, raw_row, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    provider_name,
                    period_year,
                    period_month,
                    str(row.member_number).strip(),
                    row.patient_name,
                    normalize_date(row.service_date) or None,
                    row.invoice_number,
                    row.claim_type,
                    row.scheme_name,
                    row.benefit_desc,
                    float(row.billed_amount),
                    row.currency or default_currency,
                    ClaimStatus.AWAITING_PAYMENT.value,
                    build_claim_key(row),
                    json.dumps(row.to_dict()),
                    created_at,
                ),
            )
            ids.append(cursor.lastrowid)
        return ids

    def delete_standalone_claims(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
    ) -> int:
        """Delete the period's claims that no payment has settled yet.

        A claim a run searched without pairing is still awaiting payment and
        is replaced along with its search history; a claim carrying a
        remittance line or a later status is kept.
        """
        params = (
            provider_name,
            period_year,
            period_month,
            ClaimStatus.AWAITING_PAYMENT.value,
        )
        unsettled = """
            SELECT id FROM recon_claims
            WHERE provider_name = ? AND period_year = ? AND period_month = ?
              AND remittance_line_id IS NULL AND status = ?
        """
        conn.execute(f"DELETE FROM recon_run_claims WHERE claim_id IN ({unsettled})", params)
        cursor = conn.execute(f"DELETE FROM recon_claims WHERE id IN ({unsettled})", params)
        return cursor.rowcount

    def provider_has_claims(self, conn: sqlite3.Connection, provider_name: str) -> bool:
        cursor = conn.execute(
            "SELECT 1 FROM recon_claims WHERE provider_name = ? LIMIT 1",
            (provider_name,),
        )
        return cursor.fetchone() is not None

    def _claim_conditions(
        self,
        provider_name: str | None = None,
        statuses: Iterable[ClaimStatus] | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
        claim_ids: Iterable[int] | None = None,
    ) -> tuple[list[str], list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        if provider_name:
            conditions.append("provider_name = ?")
            params.append(provider_name)
        if statuses is not None:
            values = [ClaimStatus(status).value for status in statuses]
            conditions.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if period_year is not None:
            conditions.append("period_year = ?")
            params.append(period_year)
        if period_month is not None:
            conditions.append("period_month = ?")
            params.append(period_month)
        if claim_ids is not None:
            ids = list(claim_ids)
            conditions.append(f"id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)

        return conditions, params

    def fetch_claims(
        self,
        conn: sqlite3.Connection,
        *,
        provider_name: str | None = None,
        statuses: Iterable[ClaimStatus] | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
        claim_ids: Iterable[int] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ClaimRecord]:
        conditions, params = self._claim_conditions(
            provider_name, statuses, period_year, period_month, claim_ids
        )
        # SAFETY NOTE: conditions hold hardcoded column names only; values
        # are bound as parameters.
        query = f"SELECT * FROM recon_claims WHERE {_where(conditions)} ORDER BY id"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        return [_claim_from_row(row) for row in conn.execute(query, params)]

    def count_claims(
        self,
        conn: sqlite3.Connection,
        *,
        provider_name: str | None = None,
        statuses: Iterable[ClaimStatus] | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
    ) -> int:
        conditions, params = self._claim_conditions(
            provider_name, statuses, period_year, period_month
        )
        cursor = conn.execute(
            f"SELECT COUNT(*) FROM recon_claims WHERE {_where(conditions)}", params
        )
        return cursor.fetchone()[0]

    def get_claim(self, conn: sqlite3.Connection, claim_id: int) -> ClaimRecord | None:
        row = conn.execute(
            "SELECT * FROM recon_claims WHERE id = ?", (claim_id,)
        ).fetchone()
        return _claim_from_row(row) if row else None

    def settle_claim(
        self, conn: sqlite3.Connection, result: MatchResult, run_id: int | None
    ) -> None:
        conn.execute(
            """
            UPDATE recon_claims
            SET status = ?, amount_paid = ?, remittance_line_id = ?,
                match_method = ?, overpaid = ?, run_id = ?
            WHERE id = ?
            """,
            (
                result.status.value,
                result.amount_paid,
                result.remittance_id,
                result.match_method.value if result.match_method else None,
                int(result.overpaid),
                run_id,
                result.claim_id,
            ),
        )

    def set_claim_status(
        self, conn: sqlite3.Connection, claim_id: int, status: ClaimStatus
    ) -> None:
        conn.execute(
            "UPDATE recon_claims SET status = ? WHERE id = ?", (status.value, claim_id)
        )

    def _release_remittances(
        self, conn: sqlite3.Connection, claim_filter: str, params: list[Any]
    ) -> None:
        conn.execute(
            f"""
            UPDATE recon_remittances
            SET matched_claim_id = NULL, match_type = NULL, match_method = NULL,
                status = '{ORPHAN_STATUS}'
            WHERE matched_claim_id IN (SELECT id FROM recon_claims WHERE {claim_filter})
            """,
            params,
        )

    def delete_claim(self, conn: sqlite3.Connection, claim_id: int) -> bool:
        """Purge one claim; any line it settled becomes an orphan again."""
        self._release_remittances(conn, "id = ?", [claim_id])
        conn.execute("DELETE FROM recon_run_claims WHERE claim_id = ?", (claim_id,))
        cursor = conn.execute("DELETE FROM recon_claims WHERE id = ?", (claim_id,))
        return cursor.rowcount > 0

    def delete_claims_for_period(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
    ) -> int:
        claim_filter = "provider_name = ? AND period_year = ? AND period_month = ?"
        params = [provider_name, period_year, period_month]
        self._release_remittances(conn, claim_filter, params)
        conn.execute(
            f"DELETE FROM recon_run_claims WHERE claim_id IN "
            f"(SELECT id FROM recon_claims WHERE {claim_filter})",
            params,
        )
        cursor = conn.execute(f"DELETE FROM recon_claims WHERE {claim_filter}", params)
        return cursor.rowcount

    def periods_summary(
        self, conn: sqlite3.Connection, provider_name: str | None = None
    ) -> list[dict[str, Any]]:
        """Per provider+period claim counts and totals, most recent first."""
        conditions = ["provider_name = ?"] if provider_name else []
        params = [provider_name] if provider_name else []
        cursor = conn.execute(
            f"""
            SELECT provider_name, period_year, period_month,
                   COUNT(*) AS total_claims,
                   SUM(status = 'awaiting-payment') AS awaiting_payment,
                   SUM(status IN ('matched', 'paid')) AS matched,
                   SUM(status = 'partially-paid') AS partially_paid,
                   SUM(status = 'unpaid') AS unpaid,
                   SUM(status = 'manual-review') AS manual_review,
                   SUM(overpaid) AS overpaid,
                   SUM(billed_amount) AS total_billed,
                   SUM(amount_paid) AS total_paid,
                   MIN(currency) AS currency
            FROM recon_claims
            WHERE {_where(conditions)}
            GROUP BY provider_name, period_year, period_month
            ORDER BY period_year DESC, period_month DESC, provider_name
            """,
            params,
        )
        summaries = []
        for row in cursor:
            summary = dict(row)
            summary["total_billed"] = f"{summary['total_billed'] or 0:.2f}"
            summary["total_paid"] = f"{summary['total_paid'] or 0:.2f}"
            summaries.append(summary)
        return summaries

    # ------------------------------------------------------------------
    # Remittance lines
    # ------------------------------------------------------------------

    def insert_remittances(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
        rows: Iterable[RemittanceRow],
    ) -> list[int]:
        created_at = _now()
        ids: list[int] = []
        for row in rows:
            # Store the highest-priority variant; matching regenerates all of them
            composite_key = build_remittance_key_variants(row)[0]
            cursor = conn.execute(
                """
                INSERT INTO recon_remittances (
                    provider_name, period_year, period_month,
                    employer_name, patient_name, member_number,
                    bill_no, invoice_number, claim_number, relationship,
                    service_date, claim_amount, paid_amount,
                    payment_no, payment_mode, composite_key, raw_row, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    provider_name,
                    period_year,
                    period_month,
                    row.employer_name,
                    row.patient_name,
                    str(row.member_number).strip(),
                    row.bill_no,
                    row.invoice_number,
                    row.claim_number,
                    row.relationship,
                    normalize_date(row.service_date) or None,
                    float(row.claim_amount),
                    float(row.paid_amount),
                    row.payment_no,
                    row.payment_mode,
                    composite_key,
                    json.dumps(row.to_dict()),
                    created_at,
                ),
            )
            ids.append(cursor.lastrowid)
        return ids

    def delete_standalone_remittances(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
    ) -> int:
        """Delete the period's lines not linked to a claim, orphans included."""
        cursor = conn.execute(
            """
            DELETE FROM recon_remittances
            WHERE provider_name = ? AND period_year = ? AND period_month = ?
              AND matched_claim_id IS NULL
            """,
            (provider_name, period_year, period_month),
        )
        return cursor.rowcount

    def linked_remittance_fingerprints(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
    ) -> Counter:
        rows = conn.execute(
            """
            SELECT composite_key, payment_no, paid_amount FROM recon_remittances
            WHERE provider_name = ? AND period_year = ? AND period_month = ?
              AND matched_claim_id IS NOT NULL
            """,
            (provider_name, period_year, period_month),
        ).fetchall()
        return Counter(
            remittance_fingerprint(row["composite_key"], row["payment_no"], row["paid_amount"])
            for row in rows
        )

    def fetch_remittances(
        self,
        conn: sqlite3.Connection,
        *,
        provider_name: str | None = None,
        period_year: int | None = None,
        period_month: int | None = None,
        unmatched_only: bool = False,
        orphans_only: bool = False,
    ) -> list[RemittanceRecord]:
        conditions: list[str] = []
        params: list[Any] = []

        if provider_name:
            conditions.append("provider_name = ?")
            params.append(provider_name)
        if period_year is not None:
            conditions.append("period_year = ?")
            params.append(period_year)
        if period_month is not None:
            conditions.append("period_month = ?")
            params.append(period_month)
        if unmatched_only:
            conditions.append("matched_claim_id IS NULL")
        if orphans_only:
            conditions.append("status = ?")
            params.append(ORPHAN_STATUS)

        cursor = conn.execute(
            f"SELECT * FROM recon_remittances WHERE {_where(conditions)} ORDER BY id",
            params,
        )
        return [_remittance_from_row(row) for row in cursor]

    def get_remittance(
        self, conn: sqlite3.Connection, remittance_id: int
    ) -> RemittanceRecord | None:
        row = conn.execute(
            "SELECT * FROM recon_remittances WHERE id = ?", (remittance_id,)
        ).fetchone()
        return _remittance_from_row(row) if row else None

    def link_remittance(
        self,
        conn: sqlite3.Connection,
        result: MatchResult,
        run_id: int | None,
    ) -> None:
        conn.execute(
            """
            UPDATE recon_remittances
            SET matched_claim_id = ?, match_type = ?, match_method = ?,
                status = NULL, run_id = ?
            WHERE id = ?
            """,
            (
                result.claim_id,
                result.match_type.value,
                result.match_method.value if result.match_method else None,
                run_id,
                result.remittance_id,
            ),
        )

    def mark_orphan(self, conn: sqlite3.Connection, remittance_id: int, run_id: int) -> None:
        conn.execute(
            """
            UPDATE recon_remittances
            SET status = ?, matched_claim_id = NULL, match_type = NULL,
                match_method = NULL, run_id = ?
            WHERE id = ?
            """,
            (ORPHAN_STATUS, run_id, remittance_id),
        )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def create_run(
        self,
        conn: sqlite3.Connection,
        provider_name: str,
        period_year: int,
        period_month: int,
        created_by: str | None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO recon_runs (
                provider_name, period_year, period_month, created_by, created_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (provider_name, period_year, period_month, created_by, _now()),
        )
        return cursor.lastrowid

    def finalize_run(
        self, conn: sqlite3.Connection, run_id: int, summary: ReconciliationSummary
    ) -> None:
        conn.execute(
            """
            UPDATE recon_runs
            SET total_claims_searched = ?, total_remittance_rows = ?,
                auto_matched = ?, partial_matched = ?, manual_review = ?,
                orphan_count = ?, unpaid_count = ?, claims_matched = ?,
                overpaid_count = ?
            WHERE id = ?
            """,
            (
                summary.total_claims_searched,
                summary.total_remittances,
                summary.auto_matched,
                summary.partial_matched,
                summary.manual_review,
                summary.orphan_remittances,
                summary.unpaid_claims,
                summary.claims_matched,
                summary.overpaid,
                run_id,
            ),
        )

    def insert_run_claims(
        self, conn: sqlite3.Connection, run_id: int, results: Iterable[MatchResult]
    ) -> None:
        created_at = _now()
        conn.executemany(
            """
            INSERT INTO recon_run_claims (
                run_id, claim_id, status_before_run, status_after_run,
                matched_remittance_id, match_type, match_method,
                amount_paid_in_run, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    run_id,
                    result.claim_id,
                    result.status_before.value if result.status_before else None,
                    result.status.value,
                    result.remittance_id,
                    result.match_type.value,
                    result.match_method.value if result.match_method else None,
                    result.amount_paid_in_run,
                    created_at,
                )
                for result in results
            ],
        )

    def get_run(self, conn: sqlite3.Connection, run_id: int) -> dict[str, Any] | None:
        row = conn.execute("SELECT * FROM recon_runs WHERE id = ?", (run_id,)).fetchone()
        return dict(row) if row else None

    def list_runs(
        self, conn: sqlite3.Connection, provider_name: str | None = None
    ) -> list[dict[str, Any]]:
        conditions = ["provider_name = ?"] if provider_name else []
        params = [provider_name] if provider_name else []
        cursor = conn.execute(
            f"SELECT * FROM recon_runs WHERE {_where(conditions)} ORDER BY id DESC",
            params,
        )
        return [dict(row) for row in cursor]

    def get_run_claims(self, conn: sqlite3.Connection, run_id: int) -> list[dict[str, Any]]:
        cursor = conn.execute(
            """
            SELECT rc.claim_id, rc.status_before_run, rc.status_after_run,
                   rc.matched_remittance_id, rc.match_type, rc.match_method,
                   rc.amount_paid_in_run,
                   c.member_number, c.patient_name, c.invoice_number,
                   c.service_date, c.billed_amount, c.currency,
                   c.period_year, c.period_month
            FROM recon_run_claims rc
            JOIN recon_claims c ON c.id = rc.claim_id
            WHERE rc.run_id = ?
            ORDER BY rc.claim_id
            """,
            (run_id,),
        )
        return [dict(row) for row in cursor]

    def delete_run(self, conn: sqlite3.Connection, run_id: int) -> bool:
        """Remove a run and its history; claims and lines keep their state."""
        conn.execute("DELETE FROM recon_run_claims WHERE run_id = ?", (run_id,))
        conn.execute("UPDATE recon_claims SET run_id = NULL WHERE run_id = ?", (run_id,))
        conn.execute(
            "UPDATE recon_remittances SET run_id = NULL WHERE run_id = ?", (run_id,)
        )
        cursor = conn.execute("DELETE FROM recon_runs WHERE id = ?", (run_id,))
        return cursor.rowcount > 0
