"""Inbound payment webhooks.

One pipeline for every provider::

    verify signature → parse → claim in ledger → find order → apply → mark outcome → ack

Unverifiable or malformed payloads are rejected before anything is
recorded. A duplicate event id is acknowledged with success and never
re-applied; answering a duplicate with an error only makes the provider
redeliver it again. If applying fails the ledger entry is marked
``failed`` so the provider's next delivery gets another try.
"""

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

import structlog
from protean.exceptions import ObjectNotFoundError

from storefront.gateway import get_gateway
from storefront.gateway.errors import InvalidWebhookSignature
from storefront.gateway.port import GATEWAY_METHODS
from storefront.ledger import get_ledger
from storefront.ledger.port import LedgerOutcome
from storefront.order.lookup import find_order_id
from storefront.order.payment import apply_notification
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)

WEBHOOK_PROVIDERS = frozenset(method.value for method in GATEWAY_METHODS)


@dataclass(frozen=True)
class WebhookAck:
    """What the HTTP layer sends back to the provider."""

    provider: str
    event_id: str | None
    outcome: str
    duplicate: bool = False
    order_id: str | None = None
    detail: str | None = None

    def to_dict(self) -> dict:
        return {
            "received": True,
            "provider": self.provider,
            "event_id": self.event_id,
            "outcome": self.outcome,
            "duplicate": self.duplicate,
        }


def _fallback_event_id(raw_body: bytes) -> str:
    return f"sha256:{hashlib.sha256(raw_body).hexdigest()}"


def receive_webhook(
    provider: str,
    headers: Mapping[str, str],
    raw_body: bytes,
    received_at: datetime | None = None,
) -> WebhookAck:
    """Authenticate, de-duplicate and apply one provider delivery."""
    if provider not in WEBHOOK_PROVIDERS:
        raise ObjectNotFoundError(f"No webhook endpoint for provider {provider}")

    received_at = received_at or utc_now()
    gateway = get_gateway(provider)

    if not gateway.verify_webhook(headers, raw_body, gateway.webhook_secret):
        logger.warning("Webhook signature verification failed", provider=provider, body_bytes=len(raw_body))
        raise InvalidWebhookSignature(f"Invalid {provider} webhook signature")

    notification = gateway.parse_webhook(raw_body)
    event_id = notification.event_id or _fallback_event_id(raw_body)

    ledger = get_ledger()
    claim = ledger.record_if_new(provider, event_id, received_at)
    if not claim.is_new:
        logger.info(
            "Duplicate webhook acknowledged",
            provider=provider,
            event_id=event_id,
            outcome=claim.entry.outcome,
        )
        return WebhookAck(
            provider=provider,
            event_id=event_id,
            outcome=claim.entry.outcome,
            duplicate=True,
            order_id=claim.entry.order_id,
        )

    order_id = find_order_id(provider, notification.reference)
    if order_id is None:
        logger.warning(
            "Webhook for unknown payment reference",
            provider=provider,
            event_id=event_id,
            reference=notification.reference,
        )
        ledger.mark_outcome(provider, event_id, LedgerOutcome.IGNORED, detail="unknown_reference")
        return WebhookAck(provider=provider, event_id=event_id, outcome=LedgerOutcome.IGNORED.value)

    try:
        result = apply_notification(order_id, notification, received_at=received_at)
    except Exception as exc:
        logger.error(
            "Webhook processing failed",
            provider=provider,
            event_id=event_id,
            order_id=order_id,
            error=str(exc),
        )
        ledger.mark_outcome(provider, event_id, LedgerOutcome.FAILED, detail=str(exc)[:500], order_id=order_id)
        raise

    ledger.mark_outcome(provider, event_id, LedgerOutcome.APPLIED, detail=result, order_id=order_id)
    logger.info(
        "Webhook applied",
        provider=provider,
        event_id=event_id,
        order_id=order_id,
        kind=notification.kind.value,
        result=result,
    )
    return WebhookAck(
        provider=provider,
        event_id=event_id,
        outcome=LedgerOutcome.APPLIED.value,
        order_id=order_id,
        detail=result,
    )
