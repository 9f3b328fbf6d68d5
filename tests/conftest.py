"""Pytest configuration and fixtures."""

from __future__ import annotations

import atexit
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

import pytest

# Add backend to path for imports
backend_path = str(Path(__file__).parent.parent / "backend")
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

# Set test database path before importing app
# Use a temp file instead of :memory: so every connection sees the same data
_temp_db = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_temp_db.close()
_temp_db_path = _temp_db.name
os.environ["DB_PATH"] = _temp_db_path
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RECON_CONFIG_PATH"] = str(
    Path(__file__).parent.parent / "config" / "reconciliation.yaml"
)
os.environ.pop("RECON_AMOUNT_DELTAS", None)

from fastapi.testclient import TestClient  # noqa: E402

from app import app  # noqa: E402
from reconciliation import ReconciliationService  # noqa: E402
from storage import ReconciliationStore  # noqa: E402


def _cleanup_test_db() -> None:
    """Clean up temporary test database file."""
    if os.path.exists(_temp_db_path):
        try:
            os.unlink(_temp_db_path)
        except OSError:
            pass  # File may already be deleted or locked


# Register cleanup to run at exit
atexit.register(_cleanup_test_db)


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_db() -> None:
    """Pytest fixture to ensure test database cleanup after session."""
    yield
    _cleanup_test_db()


@pytest.fixture
def store(tmp_path: Path) -> ReconciliationStore:
    """A fresh store backed by its own database file."""
    return ReconciliationStore(str(tmp_path / "recon.db"))


@pytest.fixture
def service(store: ReconciliationStore) -> ReconciliationService:
    return ReconciliationService(store)


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """API client on a database of its own, audit table included."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "api.db"))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def claim_payload() -> dict[str, Any]:
    """Claims upload body for CIC, August 2025."""
    return {
        "provider_name": "CIC",
        "period_year": 2025,
        "period_month": 8,
        "claims": [
            {
                "member_number": "CS0121",
                "patient_name": "Achol Deng",
                "service_date": "2025-08-03",
                "invoice_number": "INV-5",
                "billed_amount": 100.00,
            },
            {
                "member_number": "6444720",
                "patient_name": "Juma Lado",
                "service_date": "2025-08-10",
                "billed_amount": 250.00,
            },
        ],
    }


@pytest.fixture
def remittance_payload() -> dict[str, Any]:
    """Remittance upload body for CIC, October 2025."""
    return {
        "provider_name": "CIC",
        "period_year": 2025,
        "period_month": 10,
        "remittances": [
            {
                "member_number": "CS0121",
                "bill_no": "INV-5",
                "service_date": "2025-08-04",
                "claim_amount": 100.00,
                "paid_amount": 100.00,
            },
            {
                "member_number": 6444720.0,
                "service_date": "2025-08-10",
                "claim_amount": 251.00,
                "paid_amount": 200.00,
            },
            {
                "member_number": "CS9999",
                "service_date": "2025-09-01",
                "claim_amount": 80.00,
                "paid_amount": 80.00,
            },
        ],
    }
