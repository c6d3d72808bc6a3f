"""Shared BDD fixtures and step definitions for payment reconciliation."""

import json
from datetime import timedelta

import pytest
from pytest_bdd import given, parsers, then, when

from storefront.gateway import get_gateway
from storefront.order.payment import create_payment_session
from storefront.webhooks.receiver import receive_webhook


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def gateways(paypal, bitcoin, monero):
    """Every provider is a fake whose clock is pinned to ``now``."""
    return {"paypal": paypal, "bitcoin": bitcoin, "monero": monero}


@pytest.fixture()
def webhook(now):
    """Deliver one signed fake-provider notification."""

    def _send(provider, reference, event_id, kind="payment", minutes_later=0, **fields):
        body = json.dumps({"reference": reference, "event_id": event_id, "kind": kind, **fields}).encode()
        return receive_webhook(
            provider,
            {"X-Webhook-Signature": "test-signature"},
            body,
            received_at=now + timedelta(minutes=minutes_later),
        )

    return _send


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order totalling {total:f} GBP to be paid by "{method}"'), target_fixture="order_id")
def _(place_order, total, method):
    return place_order(method, unit_price=total)


@given(parsers.cfparse('the "{method}" exchange rate is {rate:f} GBP'))
def _(gateways, method, rate):
    gateways[method].configure(should_succeed=True, exchange_rate=rate)


@given(parsers.cfparse('the "{method}" provider will decline with "{reason}"'))
def _(gateways, method, reason):
    gateways[method].configure(should_succeed=False, failure_reason=reason)


@given(parsers.cfparse('the customer opened a "{method}" payment session'), target_fixture="session")
def _(order_id, method, now):
    return create_payment_session(order_id, method, now=now)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(
    parsers.cfparse(
        'the "{provider}" provider reports {amount:f} received with {confirmations:d} confirmations '
        'as event "{event_id}"'
    ),
    target_fixture="ack",
)
def _(webhook, session, provider, amount, confirmations, event_id):
    return webhook(provider, session["reference"], event_id, confirmations=confirmations, amount_received=amount)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the amount due is {amount:f} {currency}"))
def _(session, amount, currency):
    assert session["amount_due"] == pytest.approx(amount)
    assert session["currency"] == currency


@then(parsers.cfparse('the order status is "{status}"'))
def _(load_order, order_id, status):
    assert load_order(order_id).status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def _(load_order, order_id, status):
    assert load_order(order_id).payment_status == status


@then(parsers.cfparse('the webhook outcome is "{outcome}"'))
def _(ack, outcome):
    assert ack.outcome == outcome


@then(parsers.cfparse("the order shows {count:d} confirmations"))
def _(load_order, order_id, count):
    assert load_order(order_id).current_attempt.confirmations == count


@then(parsers.cfparse('the customer received an email "{prefix}"'))
def _(email, prefix):
    assert any(subject.startswith(prefix) for subject in email.subjects_for("ada@example.com"))


@then(parsers.cfparse('the customer received no email "{prefix}"'))
def _(email, prefix):
    assert not any(subject.startswith(prefix) for subject in email.subjects_for("ada@example.com"))
