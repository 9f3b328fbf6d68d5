"""FastAPI backend for claim/remittance reconciliation."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import CORS_ORIGINS, DB_PATH
from limiter import limiter
from routes import audit_router, reconciliation_router
from routes.audit import get_db, init_audit_table
from routes.reconciliation import get_service

# Configure logging
logger = logging.getLogger(__name__)

__version__ = "0.1.0"


def init_db() -> None:
    """Create reconciliation and audit tables."""
    service = get_service()
    conn = get_db()
    try:
        init_audit_table(conn)
    finally:
        conn.close()
    logger.info(f"Database ready at {service.store.db_path}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize resources on startup."""
    init_db()
    yield


app = FastAPI(
    title="Claim Reconciliation Service",
    description="Matches billed insurance claims against provider remittance advice",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting: upload and run endpoints carry UPLOAD_RATE_LIMIT
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(reconciliation_router)
app.include_router(audit_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": os.environ.get("DB_PATH", DB_PATH),
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
