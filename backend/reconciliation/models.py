"""Data models for claim/remittance reconciliation."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .status import ClaimStatus, MatchType


ORPHAN_STATUS = "orphan"


class MatchMethod(str, Enum):
    """How a claim was paired with its remittance line."""

    INVOICE = "invoice"
    DATE_AMOUNT = "date_amount"
    MANUAL = "manual"


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class ClaimRow:
    """A normalized claim line as produced by the row loaders."""

    member_number: str
    service_date: date | str | None
    billed_amount: float
    patient_name: str | None = None
    invoice_number: str | None = None
    claim_type: str | None = None
    scheme_name: str | None = None
    benefit_desc: str | None = None
    currency: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: _serialize(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class RemittanceRow:
    """A normalized remittance advice line."""

    member_number: str
    service_date: date | str | None
    claim_amount: float
    paid_amount: float
    employer_name: str | None = None
    patient_name: str | None = None
    bill_no: str | None = None
    invoice_number: str | None = None
    claim_number: str | None = None
    relationship: str | None = None
    payment_no: str | None = None
    payment_mode: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: _serialize(value) for key, value in asdict(self).items()}


@dataclass
class ClaimRecord:
    """A stored claim together with its reconciliation state."""

    id: int
    row: ClaimRow
    provider_name: str = ""
    period_year: int = 0
    period_month: int = 0
    status: ClaimStatus | None = ClaimStatus.AWAITING_PAYMENT
    amount_paid: float = 0.0
    remittance_line_id: int | None = None
    match_method: MatchMethod | None = None
    overpaid: bool = False
    run_id: int | None = None
    composite_key: str = ""
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.row.to_dict()
        data.update(
            {
                "id": self.id,
                "provider_name": self.provider_name,
                "period_year": self.period_year,
                "period_month": self.period_month,
                "status": _serialize(self.status),
                "amount_paid": self.amount_paid,
                "remittance_line_id": self.remittance_line_id,
                "match_method": _serialize(self.match_method),
                "overpaid": self.overpaid,
                "run_id": self.run_id,
                "composite_key": self.composite_key,
                "created_at": self.created_at,
            }
        )
        return data


@dataclass
class RemittanceRecord:
    """A stored remittance line together with its match state."""

    id: int
    row: RemittanceRow
    provider_name: str = ""
    period_year: int = 0
    period_month: int = 0
    matched_claim_id: int | None = None
    match_type: MatchType | None = None
    match_method: MatchMethod | None = None
    status: str | None = None
    run_id: int | None = None
    composite_key: str = ""
    created_at: str | None = None

    @property
    def is_orphan(self) -> bool:
        return self.status == ORPHAN_STATUS

    def to_dict(self) -> dict[str, Any]:
        data = self.row.to_dict()
        data.update(
            {
                "id": self.id,
                "provider_name": self.provider_name,
                "period_year": self.period_year,
                "period_month": self.period_month,
                "matched_claim_id": self.matched_claim_id,
                "match_type": _serialize(self.match_type),
                "match_method": _serialize(self.match_method),
                "status": self.status,
                "is_orphan": self.is_orphan,
                "run_id": self.run_id,
                "composite_key": self.composite_key,
                "created_at": self.created_at,
            }
        )
        return data


@dataclass(frozen=True)
class MatchResult:
    """Outcome for one claim in a reconciliation run."""

    claim_id: int
    remittance_id: int | None
    match_type: MatchType
    amount_paid: float
    status: ClaimStatus
    match_method: MatchMethod | None = None
    overpaid: bool = False
    status_before: ClaimStatus | None = None
    amount_paid_in_run: float = 0.0

    @property
    def matched(self) -> bool:
        return self.remittance_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {key: _serialize(value) for key, value in asdict(self).items()}


@dataclass
class MatchOutcome:
    """Everything one matcher call produced."""

    results: list[MatchResult] = field(default_factory=list)
    orphans: list[RemittanceRecord] = field(default_factory=list)

    @property
    def matched_results(self) -> list[MatchResult]:
        return [result for result in self.results if result.matched]

    @property
    def unmatched_results(self) -> list[MatchResult]:
        return [result for result in self.results if not result.matched]

    @property
    def pairings(self) -> dict[int, int]:
        """Claim id -> remittance id for every pairing formed."""
        return {
            result.claim_id: result.remittance_id
            for result in self.results
            if result.remittance_id is not None
        }


@dataclass(frozen=True)
class ReconciliationSummary:
    """Run-level counters returned to the caller."""

    total_claims: int
    total_remittances: int
    auto_matched: int
    partial_matched: int
    manual_review: int
    orphan_remittances: int = 0
    unpaid_claims: int = 0
    total_claims_searched: int = 0
    claims_matched: int = 0
    overpaid: int = 0
    run_id: int | None = None

    @classmethod
    def from_outcome(
        cls,
        outcome: MatchOutcome,
        total_remittances: int,
        run_id: int | None = None,
    ) -> ReconciliationSummary:
        matched = outcome.matched_results
        return cls(
            total_claims=len(matched),
            total_remittances=total_remittances,
            auto_matched=sum(1 for r in matched if r.match_type is MatchType.EXACT),
            partial_matched=sum(1 for r in matched if r.match_type is MatchType.PARTIAL),
            manual_review=sum(
                1 for r in matched if r.status is ClaimStatus.MANUAL_REVIEW
            ),
            orphan_remittances=len(outcome.orphans),
            unpaid_claims=len(outcome.unmatched_results),
            total_claims_searched=len(outcome.results),
            claims_matched=len(matched),
            overpaid=sum(1 for r in matched if r.overpaid),
            run_id=run_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
