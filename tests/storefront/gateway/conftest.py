import httpx
import pytest
from tenacity import wait_none

from storefront.gateway.http import GatewayHttpClient
from storefront.gateway.rates import ExchangeRateCache, RateProvider


class Router:
    """Routes mocked provider requests by ``(method, path)`` and records them."""

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"error": "no route"})
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def calls(self, method, path):
        return [r for r in self.requests if r.method == method and r.url.path == path]


class FixedRateProvider(RateProvider):
    def __init__(self, rates):
        self.rates = dict(rates)
        self.fetches = 0

    def fetch_rate(self, crypto, fiat):
        self.fetches += 1
        return self.rates[crypto]


@pytest.fixture()
def router():
    return Router()


@pytest.fixture()
def http(router):
    def _http(base_url="https://provider.test", retry_attempts=3):
        return GatewayHttpClient(
            base_url,
            timeout=5.0,
            retry_attempts=retry_attempts,
            wait=wait_none(),
            transport=httpx.MockTransport(router),
        )

    return _http


@pytest.fixture()
def rate_provider():
    return FixedRateProvider({"BTC": 45000.0, "XMR": 150.0})


@pytest.fixture()
def rates(rate_provider, now):
    return ExchangeRateCache(rate_provider, clock=lambda: now)
