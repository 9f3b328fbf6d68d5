"""Claim/remittance reconciliation for insurance billing.

Matches the claims a clinic billed to each insurance provider against the
provider's remittance advice, classifies every payment and keeps a ledger
of what is still outstanding.

Usage:
    from reconciliation import ReconciliationService
    from storage import ReconciliationStore

    service = ReconciliationService(ReconciliationStore("recon.db"))
    service.upsert_claims_for_period("CIC", 2025, 8, claim_rows)
    service.upsert_remittance_for_period("CIC", 2025, 10, remittance_rows)
    summary = service.run_claim_reconciliation("CIC", 2025, 10)

    # Pure matching, no database
    from reconciliation import match_claims_to_remittances
    outcome = match_claims_to_remittances(claims, remittances)
"""

from .errors import (
    ClaimNotFoundError,
    EmptyUploadError,
    InvalidLinkError,
    InvalidPeriodError,
    InvalidTransitionError,
    NoClaimsForProviderError,
    NoOutstandingClaimsError,
    NoRemittanceLinesError,
    NotFoundError,
    PreconditionError,
    ReconciliationError,
    RemittanceNotFoundError,
    RunNotFoundError,
)
from .keys import build_claim_key, build_remittance_key_variants
from .ledger import OutstandingClaimLedger
from .matcher import match_claims_to_remittances, settle_claim
from .models import (
    ORPHAN_STATUS,
    ClaimRecord,
    ClaimRow,
    MatchMethod,
    MatchOutcome,
    MatchResult,
    ReconciliationSummary,
    RemittanceRecord,
    RemittanceRow,
)
from .normalizer import normalize_date, normalize_invoice, normalize_member, to_cents
from .service import ReconciliationService
from .status import (
    OUTSTANDING_STATUSES,
    ClaimStatus,
    MatchType,
    can_transition,
    classify_payment,
    is_outstanding,
)
from .tolerances import MatchingConfig, load_matching_config

__all__ = [
    # Service
    "ReconciliationService",
    "OutstandingClaimLedger",
    # Matching
    "match_claims_to_remittances",
    "settle_claim",
    "build_claim_key",
    "build_remittance_key_variants",
    "normalize_member",
    "normalize_invoice",
    "normalize_date",
    "to_cents",
    "MatchingConfig",
    "load_matching_config",
    # Models
    "ClaimRow",
    "RemittanceRow",
    "ClaimRecord",
    "RemittanceRecord",
    "MatchResult",
    "MatchOutcome",
    "ReconciliationSummary",
    "MatchMethod",
    "ORPHAN_STATUS",
    # Status
    "ClaimStatus",
    "MatchType",
    "OUTSTANDING_STATUSES",
    "can_transition",
    "classify_payment",
    "is_outstanding",
    # Errors
    "ReconciliationError",
    "PreconditionError",
    "InvalidPeriodError",
    "EmptyUploadError",
    "NoClaimsForProviderError",
    "NoOutstandingClaimsError",
    "NoRemittanceLinesError",
    "NotFoundError",
    "RunNotFoundError",
    "ClaimNotFoundError",
    "RemittanceNotFoundError",
    "InvalidTransitionError",
    "InvalidLinkError",
]
