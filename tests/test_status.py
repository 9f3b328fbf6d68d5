"""Tests for the claim status lifecycle and payment classification."""

import pytest

from reconciliation.errors import InvalidTransitionError
from reconciliation.status import (
    OUTSTANDING_STATUSES,
    ClaimStatus,
    MatchType,
    can_transition,
    classify_payment,
    coerce_status,
    is_outstanding,
    validate_transition,
)


class TestClassifyPayment:
    """Test the billed/paid classification chain."""

    def test_paid_in_full(self):
        result = classify_payment(10000, 10000)
        assert result.status is ClaimStatus.MATCHED
        assert result.match_type is MatchType.EXACT
        assert result.overpaid is False

    def test_partial_payment(self):
        result = classify_payment(10000, 6000)
        assert result.status is ClaimStatus.PARTIALLY_PAID
        assert result.match_type is MatchType.PARTIAL

    def test_zero_payment(self):
        result = classify_payment(10000, 0)
        assert result.status is ClaimStatus.UNPAID
        assert result.match_type is MatchType.PARTIAL

    def test_overpayment_flagged(self):
        result = classify_payment(10000, 12000)
        assert result.status is ClaimStatus.MATCHED
        assert result.match_type is MatchType.PARTIAL
        assert result.overpaid is True

    def test_zero_billed_needs_review(self):
        for paid in (0, 100):
            result = classify_payment(0, paid)
            assert result.status is ClaimStatus.MANUAL_REVIEW
            assert result.match_type is MatchType.PARTIAL

    @pytest.mark.parametrize("billed", [1, 99, 10000, 123456])
    @pytest.mark.parametrize("paid", [0, 1, 50, 99, 100, 10000, 10001, 999999])
    def test_exhaustive_for_positive_billed(self, billed, paid):
        """Every positive-billed pair lands in one of the four settled outcomes."""
        result = classify_payment(billed, paid)
        outcome = (result.status, result.overpaid)
        assert outcome in {
            (ClaimStatus.MATCHED, False),
            (ClaimStatus.PARTIALLY_PAID, False),
            (ClaimStatus.UNPAID, False),
            (ClaimStatus.MATCHED, True),
        }
        assert result.status is not ClaimStatus.MANUAL_REVIEW


class TestTransitions:
    """Test forward-only status moves."""

    def test_outstanding_can_settle(self):
        for status in OUTSTANDING_STATUSES:
            assert can_transition(status, ClaimStatus.MATCHED)

    def test_outstanding_can_move_between_outstanding(self):
        assert can_transition(ClaimStatus.AWAITING_PAYMENT, ClaimStatus.PARTIALLY_PAID)
        assert can_transition(ClaimStatus.PARTIALLY_PAID, ClaimStatus.UNPAID)
        assert can_transition(None, ClaimStatus.AWAITING_PAYMENT)

    def test_matched_never_reverts(self):
        for status in ClaimStatus:
            assert not can_transition(ClaimStatus.MATCHED, status)

    def test_paid_is_never_a_target(self):
        assert not can_transition(ClaimStatus.AWAITING_PAYMENT, ClaimStatus.PAID)

    def test_validate_raises_with_claim_id(self):
        with pytest.raises(InvalidTransitionError, match="Claim 7 cannot move"):
            validate_transition(ClaimStatus.MATCHED, ClaimStatus.UNPAID, claim_id=7)


class TestCoerceStatus:
    def test_current_values(self):
        assert coerce_status("partially-paid") is ClaimStatus.PARTIALLY_PAID

    def test_legacy_spellings(self):
        assert coerce_status("awaiting_remittance") is ClaimStatus.AWAITING_PAYMENT
        assert coerce_status("manual_review") is ClaimStatus.MANUAL_REVIEW

    def test_empty_is_none(self):
        assert coerce_status(None) is None
        assert coerce_status("") is None

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            coerce_status("bogus")

    def test_is_outstanding(self):
        assert is_outstanding(None)
        assert is_outstanding("unpaid")
        assert not is_outstanding("matched")
        assert not is_outstanding(ClaimStatus.PAID)
