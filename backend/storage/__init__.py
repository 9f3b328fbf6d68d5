"""SQLite persistence for reconciliation data."""

from .store import ReconciliationStore

__all__ = ["ReconciliationStore"]
