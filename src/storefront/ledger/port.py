"""Webhook idempotency ledger port.

The ledger remembers every ``(provider, event_id)`` it has seen. Claiming an
event is the single atomic check-and-set on the webhook path: only the
delivery that claims an event applies it to the order, every other delivery
acknowledges without touching state.

An entry whose outcome is ``failed`` can be claimed again, so a provider
redelivery after an internal error is applied rather than lost. So can an
entry left in ``processing`` for longer than the processing timeout, which
only happens when the worker that claimed it died mid-flight.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

DEFAULT_PROCESSING_TIMEOUT = timedelta(minutes=5)


class LedgerOutcome(Enum):
    PROCESSING = "processing"
    APPLIED = "applied"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True)
class LedgerEntry:
    provider: str
    event_id: str
    received_at: datetime
    outcome: str = LedgerOutcome.PROCESSING.value
    detail: str | None = None
    order_id: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ClaimResult:
    is_new: bool
    entry: LedgerEntry


class WebhookLedger(ABC):
    """Abstract webhook ledger interface."""

    @abstractmethod
    def record_if_new(self, provider: str, event_id: str, received_at: datetime | None = None) -> ClaimResult:
        """Claim an event. ``is_new`` is True for exactly one concurrent caller."""
        ...

    @abstractmethod
    def mark_outcome(
        self,
        provider: str,
        event_id: str,
        outcome: LedgerOutcome,
        detail: str | None = None,
        order_id: str | None = None,
    ) -> None:
        """Record how a claimed event was processed."""
        ...

    @abstractmethod
    def get(self, provider: str, event_id: str) -> LedgerEntry | None:
        ...

    @abstractmethod
    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries received before ``cutoff``. Returns the number removed."""
        ...
