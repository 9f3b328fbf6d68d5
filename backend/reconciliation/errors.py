"""Exceptions raised by the reconciliation workflow.

Row-level data problems are never raised; they surface as statuses
(orphan, manual-review). These exceptions cover caller preconditions,
missing records and forbidden state changes.
"""

from __future__ import annotations

from typing import Any


class ReconciliationError(Exception):
    """Base class for reconciliation workflow errors."""


class PreconditionError(ReconciliationError):
    """An operation was called without the inputs it needs."""


class InvalidPeriodError(PreconditionError):
    def __init__(self, period_year: Any, period_month: Any) -> None:
        super().__init__(
            f"Invalid period {period_year}-{period_month}: "
            "year must be 1900-2100 and month 1-12"
        )
        self.period_year = period_year
        self.period_month = period_month


class EmptyUploadError(PreconditionError):
    def __init__(self, kind: str) -> None:
        super().__init__(f"No valid {kind} rows found in the upload")
        self.kind = kind


class NoClaimsForProviderError(PreconditionError):
    def __init__(self, provider_name: str) -> None:
        super().__init__(
            f"No claims found for {provider_name}. Please upload claims first."
        )
        self.provider_name = provider_name


class NoOutstandingClaimsError(PreconditionError):
    def __init__(self, provider_name: str) -> None:
        super().__init__(f"No claims awaiting remittance found for {provider_name}")
        self.provider_name = provider_name


class NoRemittanceLinesError(PreconditionError):
    def __init__(self, provider_name: str, period_year: int, period_month: int) -> None:
        super().__init__(
            f"No unmatched remittances found for {provider_name} "
            f"for {period_year}-{period_month:02d}. Upload a remittance statement first."
        )
        self.provider_name = provider_name
        self.period_year = period_year
        self.period_month = period_month


class NotFoundError(ReconciliationError):
    """A referenced record does not exist."""

    resource = "Record"

    def __init__(self, record_id: int) -> None:
        super().__init__(f"{self.resource} {record_id} not found")
        self.record_id = record_id


class RunNotFoundError(NotFoundError):
    resource = "Reconciliation run"


class ClaimNotFoundError(NotFoundError):
    resource = "Claim"


class RemittanceNotFoundError(NotFoundError):
    resource = "Remittance line"


class InvalidTransitionError(ReconciliationError):
    """A claim status change would move backwards or out of a settled state."""

    def __init__(self, current: Any, new: Any, claim_id: int | None = None) -> None:
        current_value = getattr(current, "value", current)
        new_value = getattr(new, "value", new)
        target = f"Claim {claim_id}" if claim_id is not None else "Claim"
        super().__init__(
            f"{target} cannot move from {current_value!s} to {new_value!s}"
        )
        self.current = current
        self.new = new
        self.claim_id = claim_id


class InvalidLinkError(ReconciliationError):
    """A manual claim/remittance link was rejected."""
