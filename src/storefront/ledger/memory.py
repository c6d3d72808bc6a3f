"""In-memory webhook ledger for development and tests.

A single lock guards the dictionary, which makes ``record_if_new`` atomic
across request threads within one process.
"""

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta

from storefront.ledger.port import (
    DEFAULT_PROCESSING_TIMEOUT,
    ClaimResult,
    LedgerEntry,
    LedgerOutcome,
    WebhookLedger,
)
from storefront.utils.clock import as_utc, utc_now


class InMemoryWebhookLedger(WebhookLedger):
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        processing_timeout: timedelta = DEFAULT_PROCESSING_TIMEOUT,
    ) -> None:
        self._entries: dict[tuple[str, str], LedgerEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.processing_timeout = processing_timeout

    def record_if_new(self, provider: str, event_id: str, received_at: datetime | None = None) -> ClaimResult:
        key = (provider, event_id)
        now = received_at or self._clock()
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                entry = LedgerEntry(provider=provider, event_id=event_id, received_at=now, updated_at=now)
                self._entries[key] = entry
                return ClaimResult(is_new=True, entry=entry)

            if existing.outcome == LedgerOutcome.FAILED.value or self._is_abandoned(existing, now):
                entry = replace(existing, outcome=LedgerOutcome.PROCESSING.value, detail=None, updated_at=now)
                self._entries[key] = entry
                return ClaimResult(is_new=True, entry=entry)

            return ClaimResult(is_new=False, entry=existing)

    def _is_abandoned(self, entry: LedgerEntry, now: datetime) -> bool:
        stamped = entry.updated_at or entry.received_at
        return (
            entry.outcome == LedgerOutcome.PROCESSING.value
            and as_utc(stamped) + self.processing_timeout < as_utc(now)
        )

    def mark_outcome(
        self,
        provider: str,
        event_id: str,
        outcome: LedgerOutcome,
        detail: str | None = None,
        order_id: str | None = None,
    ) -> None:
        key = (provider, event_id)
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                return
            self._entries[key] = replace(
                existing,
                outcome=outcome.value,
                detail=detail,
                order_id=order_id or existing.order_id,
                updated_at=self._clock(),
            )

    def get(self, provider: str, event_id: str) -> LedgerEntry | None:
        with self._lock:
            return self._entries.get((provider, event_id))

    def purge_older_than(self, cutoff: datetime) -> int:
        cutoff = as_utc(cutoff)
        with self._lock:
            expired = [key for key, entry in self._entries.items() if as_utc(entry.received_at) < cutoff]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
