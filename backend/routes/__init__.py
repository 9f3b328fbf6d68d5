"""API route modules for the reconciliation service.

This package contains focused routers that are registered with the main FastAPI app.

Routers:
- reconciliation: claim/remittance uploads, runs, manual links and queries
- audit: audit trail listing
"""

from .audit import router as audit_router
from .reconciliation import router as reconciliation_router

__all__ = ["reconciliation_router", "audit_router"]
