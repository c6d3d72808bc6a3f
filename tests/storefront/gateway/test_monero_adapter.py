"""Tests for the GloBee-backed Monero adapter."""

import hashlib
import hmac
import json
from datetime import timedelta

import httpx
import pytest

from storefront.config import CryptoSettings
from storefront.gateway.errors import GatewayError, GatewayUnavailable, MalformedWebhook
from storefront.gateway.monero_adapter import MoneroGateway
from storefront.gateway.port import NotificationKind


def _ipn(**overrides) -> bytes:
    payload = {"id": "gb-req-1", "status": "paid", "confirmations": 10, "paid_amount": 3.0}
    payload.update(overrides)
    return json.dumps(payload).encode()


@pytest.fixture()
def monero(http, rates, now):
    settings = CryptoSettings(
        api_key="key",
        webhook_secret="whsec",
        base_url="https://api.globee.test",
        callback_url="https://shop.test/webhooks/monero",
    )
    return MoneroGateway(settings, http("https://api.globee.test"), rates, clock=lambda: now)


def _created(expiration_time=None):
    data = {
        "id": "gb-req-1",
        "payment_address": "4AdUndXHHZ6cfufTMvppY6JwXNouMBzSkbLYfpAV5Usx",
        "payment_url": "https://globee.test/pay/gb-req-1",
    }
    if expiration_time:
        data["expiration_time"] = expiration_time
    return httpx.Response(201, json={"success": True, "data": data})


class TestCreatePayment:
    def test_session_quotes_xmr_to_twelve_places(self, monero, router, now):
        router.add("POST", "/v1/payment-request", _created())

        session = monero.create_payment("ORD-1", 450.0, "GBP")

        assert session.reference == "gb-req-1"
        assert session.address.startswith("4AdUnd")
        assert session.redirect_url == "https://globee.test/pay/gb-req-1"
        assert session.amount_due == 3.0
        assert session.currency == "XMR"
        assert session.confirmations_required == 10
        assert session.expires_at == now + timedelta(minutes=30)

    def test_request_body(self, monero, router):
        router.add("POST", "/v1/payment-request", _created())
        monero.create_payment("ORD-1", 100.0, "GBP")

        body = json.loads(router.requests[0].content)
        assert body["order_id"] == "ORD-1"
        assert body["currency"] == "XMR"
        assert body["total"] == round(100.0 / 150.0, 12)
        assert body["ipn_url"] == "https://shop.test/webhooks/monero"

    def test_earlier_provider_expiry_wins(self, monero, router, now):
        remote = (now + timedelta(minutes=10)).isoformat().replace("+00:00", "Z")
        router.add("POST", "/v1/payment-request", _created(remote))

        session = monero.create_payment("ORD-1", 450.0, "GBP")

        assert session.expires_at == now + timedelta(minutes=10)

    def test_later_provider_expiry_is_capped_by_local_window(self, monero, router, now):
        router.add("POST", "/v1/payment-request", _created((now + timedelta(hours=2)).isoformat()))
        assert monero.create_payment("ORD-1", 450.0, "GBP").expires_at == now + timedelta(minutes=30)

    def test_creation_is_not_retried(self, monero, router):
        router.add("POST", "/v1/payment-request", httpx.Response(503))

        with pytest.raises(GatewayUnavailable):
            monero.create_payment("ORD-1", 450.0, "GBP")

        assert len(router.requests) == 1

    def test_rejected_request_is_a_gateway_error(self, monero, router):
        router.add("POST", "/v1/payment-request", httpx.Response(422, json={"errors": ["total"]}))
        with pytest.raises(GatewayError):
            monero.create_payment("ORD-1", 450.0, "GBP")


class TestCheckStatus:
    def test_reads_payment_request(self, monero, router):
        router.add(
            "GET",
            "/v1/payment-request/gb-req-1",
            httpx.Response(200, json={"data": {"id": "gb-req-1", "status": "paid", "confirmations": 4, "paid_amount": 3.0}}),
        )

        notification = monero.check_status("gb-req-1")

        assert notification.kind == NotificationKind.PAYMENT
        assert notification.confirmations == 4
        assert notification.amount_received == 3.0

    def test_unknown_request_is_a_failure(self, monero, router):
        router.add("GET", "/v1/payment-request/gb-missing", httpx.Response(404))
        assert monero.check_status("gb-missing").kind == NotificationKind.FAILED


class TestWebhooks:
    def test_signature_with_prefix(self, monero):
        body = _ipn()
        digest = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
        assert monero.verify_webhook({"X-GloBee-Signature": f"sha256={digest}"}, body, "whsec")

    def test_bare_signature(self, monero):
        body = _ipn()
        digest = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
        assert monero.verify_webhook({"X-GloBee-Signature": digest}, body, "whsec")

    def test_wrong_secret_fails(self, monero):
        body = _ipn()
        digest = hmac.new(b"other", body, hashlib.sha256).hexdigest()
        assert not monero.verify_webhook({"X-GloBee-Signature": digest}, body, "whsec")

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            ("paid", NotificationKind.PAYMENT),
            ("confirmed", NotificationKind.PAYMENT),
            ("underpaid", NotificationKind.PAYMENT),
            ("expired", NotificationKind.EXPIRED),
            ("cancelled", NotificationKind.FAILED),
            ("invalid", NotificationKind.FAILED),
            ("unpaid", NotificationKind.PENDING),
        ],
    )
    def test_status_mapping(self, monero, status, kind):
        assert monero.parse_webhook(_ipn(status=status)).kind == kind

    def test_event_id_combines_status_and_confirmations(self, monero):
        notification = monero.parse_webhook(_ipn(status="paid", confirmations=7))
        assert notification.event_id == "gb-req-1:paid:7"
        assert notification.reference == "gb-req-1"

    @pytest.mark.parametrize(
        "body",
        [b"", _ipn(id=""), _ipn(status=None), _ipn(confirmations="many")],
    )
    def test_malformed_callbacks(self, monero, body):
        with pytest.raises(MalformedWebhook):
            monero.parse_webhook(body)


def test_refund_needs_manual_settlement(monero):
    assert monero.refund("gb-req-1", 10.0, "GBP", "k").success is False
