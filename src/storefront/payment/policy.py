"""Confirmation policy: decides whether observed funds settle a payment attempt.

Pure decision function with no side effects. Evaluated identically on every
delivery for an attempt, so replays and out-of-order webhooks converge on the
same answer.

Decision order:
    1. Past expiry and not yet accepted     → EXPIRED
    2. Received below the tolerance band    → UNDERPAID
    3. Fewer confirmations than required    → PENDING_CONFIRMATION
    4. Otherwise                            → ACCEPTED

Overpayment never blocks acceptance.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from storefront.utils.clock import as_utc

BITCOIN_REQUIRED_CONFIRMATIONS = 2
MONERO_REQUIRED_CONFIRMATIONS = 10
PAYPAL_REQUIRED_CONFIRMATIONS = 0

DEFAULT_TOLERANCE_FRACTION = 0.01

REQUIRED_CONFIRMATIONS = {
    "paypal": PAYPAL_REQUIRED_CONFIRMATIONS,
    "bitcoin": BITCOIN_REQUIRED_CONFIRMATIONS,
    "monero": MONERO_REQUIRED_CONFIRMATIONS,
}


class PolicyDecision(Enum):
    ACCEPTED = "accepted"
    PENDING_CONFIRMATION = "pending_confirmation"
    UNDERPAID = "underpaid"
    EXPIRED = "expired"


def required_confirmations(provider: str) -> int:
    """Confirmation threshold for a provider; unknown providers settle immediately."""
    return REQUIRED_CONFIRMATIONS.get(provider, 0)


def minimum_acceptable(amount_expected: float, tolerance_fraction: float = DEFAULT_TOLERANCE_FRACTION) -> Decimal:
    return Decimal(str(amount_expected)) * (Decimal(1) - Decimal(str(tolerance_fraction)))


def evaluate(
    confirmations_observed: int,
    confirmations_required: int,
    amount_received: float,
    amount_expected: float,
    attempt_expiry: datetime | None,
    now: datetime,
    tolerance_fraction: float = DEFAULT_TOLERANCE_FRACTION,
    accepted: bool = False,
) -> PolicyDecision:
    if accepted:
        return PolicyDecision.ACCEPTED

    if attempt_expiry is not None and as_utc(now) > as_utc(attempt_expiry):
        return PolicyDecision.EXPIRED

    if Decimal(str(amount_received or 0)) < minimum_acceptable(amount_expected, tolerance_fraction):
        return PolicyDecision.UNDERPAID

    if (confirmations_observed or 0) < confirmations_required:
        return PolicyDecision.PENDING_CONFIRMATION

    return PolicyDecision.ACCEPTED
