"""Tests for the webhook idempotency ledger, in memory and on SQLite."""

import threading
from datetime import timedelta

import pytest

from storefront.config import Settings, set_settings
from storefront.ledger import get_ledger, reset_ledger
from storefront.ledger.memory import InMemoryWebhookLedger
from storefront.ledger.port import LedgerOutcome
from storefront.ledger.sql import SqlAlchemyWebhookLedger


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request, now):
    if request.param == "memory":
        yield InMemoryWebhookLedger(clock=lambda: now)
        return

    sql_ledger = SqlAlchemyWebhookLedger("sqlite://", clock=lambda: now)
    sql_ledger.create_tables()
    yield sql_ledger
    sql_ledger.drop_tables()
    sql_ledger.engine.dispose()


class TestClaiming:
    def test_first_delivery_is_new(self, ledger, now):
        claim = ledger.record_if_new("bitcoin", "tx-1:1", received_at=now)

        assert claim.is_new is True
        assert claim.entry.outcome == LedgerOutcome.PROCESSING.value

    def test_redelivery_is_a_duplicate(self, ledger, now):
        ledger.record_if_new("bitcoin", "tx-1:1", received_at=now)

        claim = ledger.record_if_new("bitcoin", "tx-1:1", received_at=now)

        assert claim.is_new is False
        assert claim.entry.event_id == "tx-1:1"

    def test_same_event_id_from_another_provider_is_new(self, ledger, now):
        ledger.record_if_new("bitcoin", "evt-1", received_at=now)
        assert ledger.record_if_new("monero", "evt-1", received_at=now).is_new is True

    def test_applied_event_is_not_claimed_again(self, ledger, now):
        ledger.record_if_new("paypal", "WH-1", received_at=now)
        ledger.mark_outcome("paypal", "WH-1", LedgerOutcome.APPLIED, detail="accepted", order_id="order-1")

        claim = ledger.record_if_new("paypal", "WH-1", received_at=now)

        assert claim.is_new is False
        assert claim.entry.outcome == LedgerOutcome.APPLIED.value
        assert claim.entry.order_id == "order-1"

    def test_failed_event_can_be_reclaimed(self, ledger, now):
        ledger.record_if_new("paypal", "WH-1", received_at=now)
        ledger.mark_outcome("paypal", "WH-1", LedgerOutcome.FAILED, detail="database down")

        claim = ledger.record_if_new("paypal", "WH-1", received_at=now)

        assert claim.is_new is True
        assert claim.entry.outcome == LedgerOutcome.PROCESSING.value
        assert claim.entry.detail is None

    def test_event_still_processing_is_not_reclaimed(self, ledger, now):
        ledger.record_if_new("paypal", "WH-1", received_at=now)
        assert ledger.record_if_new("paypal", "WH-1", received_at=now).is_new is False

    def test_processing_inside_the_timeout_is_not_reclaimed(self, ledger, now):
        ledger.record_if_new("bitcoin", "tx-1:2", received_at=now)

        claim = ledger.record_if_new("bitcoin", "tx-1:2", received_at=now + timedelta(minutes=4))

        assert claim.is_new is False

    def test_abandoned_processing_entry_is_reclaimed(self, ledger, now):
        ledger.record_if_new("bitcoin", "tx-1:2", received_at=now)
        later = now + timedelta(minutes=6)

        claim = ledger.record_if_new("bitcoin", "tx-1:2", received_at=later)

        assert claim.is_new is True
        assert claim.entry.outcome == LedgerOutcome.PROCESSING.value
        assert claim.entry.updated_at == later
        assert ledger.record_if_new("bitcoin", "tx-1:2", received_at=later).is_new is False

    def test_processing_timeout_is_configurable(self, now):
        ledger = InMemoryWebhookLedger(clock=lambda: now, processing_timeout=timedelta(seconds=30))
        ledger.record_if_new("monero", "gb-1:paid:10", received_at=now)

        assert ledger.record_if_new("monero", "gb-1:paid:10", received_at=now + timedelta(minutes=1)).is_new is True


class TestOutcomes:
    def test_outcome_is_recorded(self, ledger, now):
        ledger.record_if_new("monero", "gb-1:paid:10", received_at=now)
        ledger.mark_outcome("monero", "gb-1:paid:10", LedgerOutcome.IGNORED, detail="attempt closed")

        entry = ledger.get("monero", "gb-1:paid:10")

        assert entry.outcome == LedgerOutcome.IGNORED.value
        assert entry.detail == "attempt closed"

    def test_unknown_event(self, ledger):
        assert ledger.get("monero", "missing") is None

    def test_marking_an_unknown_event_is_harmless(self, ledger):
        ledger.mark_outcome("monero", "missing", LedgerOutcome.APPLIED)
        assert ledger.get("monero", "missing") is None


class TestRetention:
    def test_purge_removes_only_old_entries(self, ledger, now):
        ledger.record_if_new("bitcoin", "old", received_at=now - timedelta(days=100))
        ledger.record_if_new("bitcoin", "recent", received_at=now - timedelta(days=5))

        removed = ledger.purge_older_than(now - timedelta(days=90))

        assert removed == 1
        assert ledger.get("bitcoin", "old") is None
        assert ledger.get("bitcoin", "recent") is not None


def test_concurrent_claims_have_one_winner(now):
    ledger = InMemoryWebhookLedger(clock=lambda: now)
    results = []
    barrier = threading.Barrier(8)

    def claim():
        barrier.wait()
        results.append(ledger.record_if_new("bitcoin", "tx-9:2").is_new)

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert len(ledger) == 1


def test_registry_applies_the_configured_processing_timeout():
    set_settings(Settings(ledger_processing_timeout_seconds=45))
    reset_ledger()

    ledger = get_ledger()

    assert isinstance(ledger, InMemoryWebhookLedger)
    assert ledger.processing_timeout == timedelta(seconds=45)
