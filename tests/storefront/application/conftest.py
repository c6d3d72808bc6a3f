import json

import pytest
from protean import current_domain

from storefront.order.payment import capture_payment, create_payment_session
from storefront.order.status import UpdateOrderStatus
from storefront.webhooks.receiver import receive_webhook


@pytest.fixture()
def deliver(now):
    """Deliver a signed fake-gateway webhook through the full receiving pipeline."""

    def _deliver(provider, reference, event_id, kind="payment", received_at=None, **fields):
        body = json.dumps({"reference": reference, "event_id": event_id, "kind": kind, **fields}).encode()
        return receive_webhook(
            provider,
            {"X-Webhook-Signature": "test-signature"},
            body,
            received_at=received_at or now,
        )

    return _deliver


@pytest.fixture()
def bitcoin_checkout(place_order, bitcoin, now):
    """A £450 Bitcoin order with an open session. Returns ``(order_id, session_view)``."""
    order_id = place_order("bitcoin")
    return order_id, create_payment_session(order_id, "bitcoin", now=now)


@pytest.fixture()
def paid_paypal_order(place_order, paypal, now):
    """A £450 PayPal order whose payment has been captured."""
    order_id = place_order("paypal")
    create_payment_session(order_id, "paypal", now=now)
    capture_payment(order_id, now=now)
    return order_id


@pytest.fixture()
def move_order():
    def _move(order_id, status, **fields):
        current_domain.process(
            UpdateOrderStatus(order_id=order_id, status=status, admin_id="admin-1", **fields),
            asynchronous=False,
        )

    return _move


@pytest.fixture()
def delivered_order(paid_paypal_order, move_order):
    move_order(paid_paypal_order, "shipped", tracking_number="TRK-1", carrier="Royal Mail")
    move_order(paid_paypal_order, "delivered")
    return paid_paypal_order
