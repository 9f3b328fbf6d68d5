"""Shared Pydantic schemas for the reconciliation backend.

This module centralizes request/response models used by the routers
and the CSV loaders so row validation has a single definition.
"""

from .reconciliation import (
    ClaimRowIn,
    ClaimsUploadRequest,
    ManualLinkRequest,
    MatchResultResponse,
    PeriodRequest,
    ReconciliationSummaryResponse,
    RemittanceRowIn,
    RemittanceUploadRequest,
    RunRequest,
    UploadResponse,
)

__all__ = [
    "ClaimRowIn",
    "RemittanceRowIn",
    "PeriodRequest",
    "ClaimsUploadRequest",
    "RemittanceUploadRequest",
    "RunRequest",
    "ManualLinkRequest",
    "UploadResponse",
    "ReconciliationSummaryResponse",
    "MatchResultResponse",
]
