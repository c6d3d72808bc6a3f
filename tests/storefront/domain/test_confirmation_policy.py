"""Tests for the payment confirmation policy."""

from datetime import UTC, datetime, timedelta

import pytest

from storefront.payment.policy import (
    BITCOIN_REQUIRED_CONFIRMATIONS,
    MONERO_REQUIRED_CONFIRMATIONS,
    PolicyDecision,
    evaluate,
    minimum_acceptable,
    required_confirmations,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
LATER = NOW + timedelta(minutes=30)


def _evaluate(**overrides):
    params = {
        "confirmations_observed": 2,
        "confirmations_required": 2,
        "amount_received": 0.01,
        "amount_expected": 0.01,
        "attempt_expiry": LATER,
        "now": NOW,
    }
    params.update(overrides)
    return evaluate(**params)


class TestRequiredConfirmations:
    def test_provider_thresholds(self):
        assert required_confirmations("paypal") == 0
        assert required_confirmations("bitcoin") == BITCOIN_REQUIRED_CONFIRMATIONS == 2
        assert required_confirmations("monero") == MONERO_REQUIRED_CONFIRMATIONS == 10

    def test_unknown_provider_needs_none(self):
        assert required_confirmations("cash_on_delivery") == 0


class TestTolerance:
    def test_minimum_acceptable_is_one_percent_below(self):
        assert float(minimum_acceptable(450.0)) == pytest.approx(445.5)

    def test_ninety_nine_and_a_half_percent_is_accepted(self):
        assert _evaluate(amount_received=0.00995) == PolicyDecision.ACCEPTED

    def test_exactly_at_tolerance_is_accepted(self):
        assert _evaluate(amount_received=0.0099) == PolicyDecision.ACCEPTED

    def test_ninety_eight_point_nine_percent_is_underpaid(self):
        assert _evaluate(amount_received=0.00989) == PolicyDecision.UNDERPAID

    def test_overpayment_is_accepted(self):
        assert _evaluate(amount_received=0.02) == PolicyDecision.ACCEPTED

    def test_nothing_received_is_underpaid(self):
        assert _evaluate(amount_received=0.0, confirmations_observed=0) == PolicyDecision.UNDERPAID


class TestConfirmations:
    def test_fewer_confirmations_than_required_is_pending(self):
        assert _evaluate(confirmations_observed=1) == PolicyDecision.PENDING_CONFIRMATION

    def test_more_confirmations_than_required_is_accepted(self):
        assert _evaluate(confirmations_observed=6) == PolicyDecision.ACCEPTED

    def test_underpayment_is_reported_before_missing_confirmations(self):
        assert _evaluate(confirmations_observed=0, amount_received=0.005) == PolicyDecision.UNDERPAID


class TestExpiry:
    def test_past_expiry_is_expired(self):
        assert _evaluate(now=LATER + timedelta(seconds=1)) == PolicyDecision.EXPIRED

    def test_expiry_wins_over_full_payment(self):
        assert _evaluate(now=LATER + timedelta(minutes=5), confirmations_observed=10) == PolicyDecision.EXPIRED

    def test_exactly_at_expiry_is_still_open(self):
        assert _evaluate(now=LATER) == PolicyDecision.ACCEPTED

    def test_no_expiry_never_expires(self):
        assert _evaluate(attempt_expiry=None, now=NOW + timedelta(days=365)) == PolicyDecision.ACCEPTED

    def test_naive_expiry_is_treated_as_utc(self):
        naive = LATER.replace(tzinfo=None)
        assert _evaluate(attempt_expiry=naive, now=LATER + timedelta(seconds=1)) == PolicyDecision.EXPIRED


class TestAcceptedIsSticky:
    def test_accepted_attempt_stays_accepted_after_expiry(self):
        decision = _evaluate(accepted=True, now=LATER + timedelta(days=1), amount_received=0.0)
        assert decision == PolicyDecision.ACCEPTED

    def test_same_inputs_same_answer(self):
        assert {_evaluate(confirmations_observed=1) for _ in range(5)} == {PolicyDecision.PENDING_CONFIRMATION}
