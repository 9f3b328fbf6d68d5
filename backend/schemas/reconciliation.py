"""Pydantic schemas for claim reconciliation endpoints."""

from __future__ import annotations

import math
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from reconciliation.models import ClaimRow, RemittanceRow

MAX_ROWS_PER_REQUEST = 20000


def _coerce_identifier(value: Any) -> Any:
    """Spreadsheet exports hand member numbers over as numbers."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


class ClaimRowIn(BaseModel):
    """One claim line as billed to the provider."""

    member_number: str = Field(min_length=1)
    patient_name: str | None = None
    service_date: date | str | None = None
    invoice_number: str | None = None
    claim_type: str | None = None
    scheme_name: str | None = None
    benefit_desc: str | None = None
    billed_amount: float = Field(ge=0, allow_inf_nan=False)
    currency: str | None = None

    @field_validator("member_number", "invoice_number", mode="before")
    @classmethod
    def coerce_identifiers(cls, v: Any) -> Any:
        return _coerce_identifier(v)

    def to_row(self) -> ClaimRow:
        return ClaimRow(**self.model_dump())


class RemittanceRowIn(BaseModel):
    """One line of a provider's remittance advice."""

    employer_name: str | None = None
    patient_name: str | None = None
    member_number: str = Field(min_length=1)
    bill_no: str | None = None
    invoice_number: str | None = None
    claim_number: str | None = None
    relationship: str | None = None
    service_date: date | str | None = None
    claim_amount: float = Field(ge=0, allow_inf_nan=False)
    paid_amount: float = Field(ge=0, allow_inf_nan=False)
    payment_no: str | None = None
    payment_mode: str | None = None

    @field_validator(
        "member_number",
        "bill_no",
        "invoice_number",
        "claim_number",
        "payment_no",
        mode="before",
    )
    @classmethod
    def coerce_identifiers(cls, v: Any) -> Any:
        return _coerce_identifier(v)

    def to_row(self) -> RemittanceRow:
        return RemittanceRow(**self.model_dump())


class PeriodRequest(BaseModel):
    """Provider and filing period shared by uploads and runs."""

    provider_name: str = Field(min_length=1, max_length=128)
    period_year: int = Field(ge=1900, le=2100)
    period_month: int = Field(ge=1, le=12)

    @field_validator("provider_name")
    @classmethod
    def strip_provider_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("provider_name must not be blank")
        return v


class ClaimsUploadRequest(PeriodRequest):
    """Request model for staging a period's claims."""

    claims: list[ClaimRowIn]

    @field_validator("claims")
    @classmethod
    def validate_claims_length(cls, v: list[ClaimRowIn]) -> list[ClaimRowIn]:
        """Validate that claims doesn't exceed maximum length."""
        if len(v) > MAX_ROWS_PER_REQUEST:
            raise ValueError(
                f"Too many claims. Maximum {MAX_ROWS_PER_REQUEST} per request."
            )
        return v


class RemittanceUploadRequest(PeriodRequest):
    """Request model for staging a period's remittance advice."""

    remittances: list[RemittanceRowIn]

    @field_validator("remittances")
    @classmethod
    def validate_remittances_length(
        cls, v: list[RemittanceRowIn]
    ) -> list[RemittanceRowIn]:
        if len(v) > MAX_ROWS_PER_REQUEST:
            raise ValueError(
                f"Too many remittance lines. Maximum {MAX_ROWS_PER_REQUEST} per request."
            )
        return v


class RunRequest(PeriodRequest):
    """Request model for a reconciliation run."""


class ManualLinkRequest(BaseModel):
    """Request model for linking an orphan remittance line to a claim."""

    claim_id: int = Field(gt=0)
    remittance_id: int = Field(gt=0)


class UploadResponse(BaseModel):
    provider_name: str
    period_year: int
    period_month: int
    inserted: int
    replaced: int
    already_linked: int = 0
    skipped_rows: list[dict[str, Any]] = Field(default_factory=list)


class ReconciliationSummaryResponse(BaseModel):
    """Run-level counters."""

    run_id: int | None = None
    total_claims: int
    total_remittances: int
    auto_matched: int
    partial_matched: int
    manual_review: int
    orphan_remittances: int
    unpaid_claims: int
    total_claims_searched: int
    claims_matched: int
    overpaid: int


class MatchResultResponse(BaseModel):
    claim_id: int
    remittance_id: int | None = None
    match_type: str
    amount_paid: float
    status: str
    match_method: str | None = None
    overpaid: bool = False
    status_before: str | None = None
    amount_paid_in_run: float = 0.0
