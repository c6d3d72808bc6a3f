"""Webhook ledger registry.

Provides get_ledger() / set_ledger() to swap implementations:
- SqlAlchemyWebhookLedger when WEBHOOK_LEDGER_DATABASE_URL is set
- InMemoryWebhookLedger otherwise
"""

from datetime import timedelta

from storefront.config import get_settings
from storefront.ledger.memory import InMemoryWebhookLedger
from storefront.ledger.port import WebhookLedger
from storefront.ledger.sql import SqlAlchemyWebhookLedger

_current_ledger: WebhookLedger | None = None


def get_ledger() -> WebhookLedger:
    """Return the current webhook ledger, building it from settings on first use."""
    global _current_ledger
    if _current_ledger is None:
        settings = get_settings()
        timeout = timedelta(seconds=settings.ledger_processing_timeout_seconds)
        if settings.ledger_database_url:
            _current_ledger = SqlAlchemyWebhookLedger(settings.ledger_database_url, processing_timeout=timeout)
        else:
            _current_ledger = InMemoryWebhookLedger(processing_timeout=timeout)
    return _current_ledger


def set_ledger(ledger: WebhookLedger) -> None:
    """Override the active webhook ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_ledger() -> None:
    """Reset to the default ledger."""
    global _current_ledger
    _current_ledger = None
