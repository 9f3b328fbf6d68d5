"""Shared configuration for the reconciliation backend.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Database configuration
DB_PATH = os.getenv("DB_PATH", "./data/reconciliation.db")

# Matching tolerances (YAML, optional)
RECON_CONFIG_PATH = os.getenv("RECON_CONFIG_PATH", "./config/reconciliation.yaml")

# Currency stamped on claims that do not carry one
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "SSP")

# Rate limiting for upload and run endpoints
UPLOAD_RATE_LIMIT = os.getenv("UPLOAD_RATE_LIMIT", "30/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Largest accepted CSV upload, in bytes
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# CORS configuration
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,"
        "http://localhost:5173,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]
