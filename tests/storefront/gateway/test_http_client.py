"""Tests for the outbound gateway HTTP client."""

import httpx
import pytest

from storefront.gateway.errors import GatewayUnavailable
from storefront.gateway.http import json_body


class TestRetries:
    def test_idempotent_call_retries_transient_errors(self, router, http):
        router.add("GET", "/status", httpx.Response(503), httpx.Response(503), httpx.Response(200, json={"ok": True}))

        response = http().request("GET", "/status", idempotent=True)

        assert response.status_code == 200
        assert len(router.calls("GET", "/status")) == 3

    def test_idempotent_call_gives_up_after_attempts(self, router, http):
        router.add("GET", "/status", httpx.Response(503))

        with pytest.raises(GatewayUnavailable) as exc:
            http(retry_attempts=2).request("GET", "/status", idempotent=True)

        assert exc.value.status_code == 503
        assert len(router.calls("GET", "/status")) == 2

    def test_non_idempotent_call_is_sent_once(self, router, http):
        router.add("POST", "/capture", httpx.Response(502))

        with pytest.raises(GatewayUnavailable):
            http().request("POST", "/capture")

        assert len(router.calls("POST", "/capture")) == 1

    def test_throttling_is_transient(self, router, http):
        router.add("GET", "/status", httpx.Response(429), httpx.Response(200, json={}))
        assert http().request("GET", "/status", idempotent=True).status_code == 200


class TestErrorTranslation:
    def test_timeout_becomes_gateway_unavailable(self, router, http):
        router.add("GET", "/slow", httpx.ReadTimeout("timed out"))
        with pytest.raises(GatewayUnavailable):
            http().request("GET", "/slow")

    def test_connection_error_becomes_gateway_unavailable(self, router, http):
        router.add("GET", "/down", httpx.ConnectError("refused"))
        with pytest.raises(GatewayUnavailable):
            http().request("GET", "/down")

    def test_rejected_credentials(self, router, http):
        router.add("GET", "/secure", httpx.Response(401))
        with pytest.raises(GatewayUnavailable) as exc:
            http().request("GET", "/secure")
        assert exc.value.status_code == 401

    def test_client_errors_are_returned(self, router, http):
        router.add("GET", "/missing", httpx.Response(404, json={"error": "nope"}))
        assert http().request("GET", "/missing").status_code == 404


class TestJsonBody:
    def test_decodes_objects(self):
        assert json_body(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_non_json_is_transient(self):
        with pytest.raises(GatewayUnavailable):
            json_body(httpx.Response(200, text="<html>maintenance</html>"))

    def test_non_object_is_transient(self):
        with pytest.raises(GatewayUnavailable):
            json_body(httpx.Response(200, json=[1, 2]))
