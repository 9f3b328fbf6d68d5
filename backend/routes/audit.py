"""Audit trail for reconciliation activity.

Every upload, run, manual link and purge writes one entry so finance staff
can see who changed which provider's ledger and when.

Security Note:
    Caller identity comes from the optional ``X-User-Id`` header and is not
    verified. Put the service behind an authenticating proxy in production.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from config import DB_PATH

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audit", tags=["audit"])

AUDIT_TABLE = "recon_audit_log"

# Database files whose audit table exists already
_ready_paths: set[str] = set()
_ready_lock = threading.Lock()


class AuditAction(str, Enum):
    """Operations that change a provider's reconciliation state."""

    CLAIMS_UPLOAD = "claims.upload"
    CLAIM_DELETE = "claim.delete"
    CLAIMS_PERIOD_DELETE = "claims.period_delete"
    REMITTANCE_UPLOAD = "remittance.upload"
    RUN_EXECUTE = "run.execute"
    RUN_DELETE = "run.delete"
    MANUAL_LINK = "remittance.manual_link"


class AuditEntry(BaseModel):
    id: str
    recorded_at: str
    action: str
    actor: str | None = None
    provider_name: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] | None = None
    ip_address: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> AuditEntry:
        details = None
        if row["details"]:
            try:
                details = json.loads(row["details"])
            except json.JSONDecodeError:
                details = {"raw": row["details"]}
        return cls(**{**dict(row), "details": details})


class AuditPage(BaseModel):
    """One page of audit entries, newest first."""

    entries: list[AuditEntry]
    total: int
    limit: int
    offset: int
    filters: dict[str, Any]


def _db_path() -> str:
    return os.environ.get("DB_PATH", DB_PATH)


def get_db() -> sqlite3.Connection:
    conn = sqlite3.connect(_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_audit_table(conn: sqlite3.Connection, db_path: str | None = None) -> None:
    """Create the audit table once per database file."""
    path = db_path or _db_path()
    if path in _ready_paths:
        return

    with _ready_lock:
        if path in _ready_paths:
            return
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {AUDIT_TABLE} (
                id TEXT PRIMARY KEY,
                recorded_at TEXT NOT NULL,
                action TEXT NOT NULL,
                actor TEXT,
                provider_name TEXT,
                resource_type TEXT,
                resource_id TEXT,
                details TEXT,
                ip_address TEXT
            )
        """)
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_audit_recorded ON {AUDIT_TABLE}(recorded_at)"
        )
        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_audit_provider_action "
            f"ON {AUDIT_TABLE}(provider_name, action)"
        )
        conn.commit()
        _ready_paths.add(path)


def log_audit_event(
    conn: sqlite3.Connection,
    action: AuditAction,
    *,
    actor: str | None = None,
    provider_name: str | None = None,
    resource_type: str | None = None,
    resource_id: Any = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> str:
    """Insert one audit entry and return its id."""
    init_audit_table(conn)

    entry_id = str(uuid.uuid4())
    conn.execute(
        f"""
        INSERT INTO {AUDIT_TABLE} (
            id, recorded_at, action, actor, provider_name,
            resource_type, resource_id, details, ip_address
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            entry_id,
            datetime.now(timezone.utc).isoformat(),
            action.value,
            actor,
            provider_name,
            resource_type,
            None if resource_id is None else str(resource_id),
            json.dumps(details, default=str) if details else None,
            ip_address,
        ),
    )
    conn.commit()
    return entry_id


def record_event(action: AuditAction, **fields: Any) -> None:
    """Write one audit entry on a connection of its own.

    The audited operation has already committed, so a failed write is
    logged rather than raised.
    """
    conn = get_db()
    try:
        log_audit_event(conn, action, **fields)
    except sqlite3.Error as e:
        logger.error(f"Failed to write audit entry for {action.value}: {e}", exc_info=True)
    finally:
        conn.close()


def query_audit_log(
    conn: sqlite3.Connection,
    filters: dict[str, Any],
    limit: int,
    offset: int,
) -> tuple[int, list[AuditEntry]]:
    # Filter keys are column names chosen by the caller below, values are bound
    active = {column: value for column, value in filters.items() if value}
    where = " AND ".join(f"{column} = ?" for column in active) or "1=1"
    params = list(active.values())

    total = conn.execute(
        f"SELECT COUNT(*) FROM {AUDIT_TABLE} WHERE {where}", params
    ).fetchone()[0]
    rows = conn.execute(
        f"SELECT * FROM {AUDIT_TABLE} WHERE {where} "
        "ORDER BY recorded_at DESC, rowid DESC LIMIT ? OFFSET ?",
        params + [limit, offset],
    ).fetchall()
    return total, [AuditEntry.from_row(row) for row in rows]


@router.get("", response_model=AuditPage)
async def list_audit_entries(
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    action: str | None = Query(default=None, description="Filter by action"),
    actor: str | None = Query(default=None, description="Filter by X-User-Id"),
    provider_name: str | None = Query(default=None, description="Filter by provider"),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
) -> AuditPage:
    """Audit entries, newest first."""
    filters = {
        "action": action,
        "actor": actor,
        "provider_name": provider_name,
        "resource_type": resource_type,
        "resource_id": resource_id,
    }
    conn = get_db()
    try:
        init_audit_table(conn)
        total, entries = query_audit_log(conn, filters, limit, offset)
    finally:
        conn.close()

    return AuditPage(
        entries=entries, total=total, limit=limit, offset=offset, filters=filters
    )


@router.get("/actions")
async def list_audit_actions() -> dict[str, Any]:
    return {"actions": [action.value for action in AuditAction]}
