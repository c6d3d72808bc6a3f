"""Fiat to crypto exchange rates with a time-to-live cache.

``ExchangeRateCache`` sits in front of a ``RateProvider`` (CoinGecko in
production). Fresh rates are served from memory until their TTL lapses. When
a refresh fails, a stale rate younger than ``stale_grace`` is served with a
warning; older or missing rates surface as ``GatewayUnavailable``.
"""

import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from storefront.gateway.errors import GatewayUnavailable
from storefront.gateway.http import GatewayHttpClient, json_body
from storefront.utils.clock import utc_now

logger = structlog.get_logger(__name__)

COIN_IDS = {
    "BTC": "bitcoin",
    "XMR": "monero",
}

DEFAULT_TTLS = {
    "BTC": timedelta(minutes=15),
    "XMR": timedelta(minutes=5),
}

DEFAULT_STALE_GRACE = timedelta(hours=1)


@dataclass(frozen=True)
class ExchangeRate:
    """Price of one unit of ``crypto`` expressed in ``fiat``."""

    crypto: str
    fiat: str
    rate: float
    fetched_at: datetime
    cached: bool = False
    stale: bool = False

    def to_crypto(self, fiat_amount: float, places: int) -> float:
        return round(fiat_amount / self.rate, places)


class RateProvider(ABC):
    @abstractmethod
    def fetch_rate(self, crypto: str, fiat: str) -> float:
        """Return the current price of one ``crypto`` unit in ``fiat``."""
        ...


class CoinGeckoRateProvider(RateProvider):
    """Reads spot prices from the CoinGecko ``simple/price`` endpoint."""

    def __init__(self, http: GatewayHttpClient) -> None:
        self.http = http

    def fetch_rate(self, crypto: str, fiat: str) -> float:
        coin_id = COIN_IDS.get(crypto.upper())
        if coin_id is None:
            raise ValueError(f"Unsupported cryptocurrency: {crypto}")

        vs_currency = fiat.lower()
        response = self.http.request(
            "GET",
            "/api/v3/simple/price",
            params={"ids": coin_id, "vs_currencies": vs_currency},
            headers={"Accept": "application/json"},
            idempotent=True,
        )
        if response.status_code != 200:
            raise GatewayUnavailable(f"Rate lookup returned {response.status_code}", status_code=response.status_code)

        payload = json_body(response)
        try:
            rate = float(payload[coin_id][vs_currency])
        except (KeyError, TypeError, ValueError) as exc:
            raise GatewayUnavailable(f"Rate lookup returned no {crypto}/{fiat} price") from exc
        if not math.isfinite(rate) or rate <= 0:
            raise GatewayUnavailable(f"Rate lookup returned a non-positive {crypto}/{fiat} price")
        return rate


class ExchangeRateCache:
    def __init__(
        self,
        provider: RateProvider,
        ttls: dict[str, timedelta] | None = None,
        stale_grace: timedelta = DEFAULT_STALE_GRACE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.provider = provider
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.stale_grace = stale_grace
        self._clock = clock
        self._entries: dict[tuple[str, str], ExchangeRate] = {}
        self._lock = threading.Lock()

    def ttl_for(self, crypto: str) -> timedelta:
        return self.ttls.get(crypto.upper(), timedelta(minutes=5))

    def get_rate(self, crypto: str, fiat: str) -> ExchangeRate:
        key = (crypto.upper(), fiat.upper())
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and now - entry.fetched_at < self.ttl_for(key[0]):
            return ExchangeRate(crypto=key[0], fiat=key[1], rate=entry.rate, fetched_at=entry.fetched_at, cached=True)

        try:
            rate = self.provider.fetch_rate(key[0], key[1])
        except GatewayUnavailable as exc:
            if entry is not None and now - entry.fetched_at < self.stale_grace:
                logger.warning(
                    "Serving stale exchange rate after refresh failure",
                    crypto=key[0],
                    fiat=key[1],
                    age_seconds=int((now - entry.fetched_at).total_seconds()),
                    error=str(exc),
                )
                return ExchangeRate(
                    crypto=key[0],
                    fiat=key[1],
                    rate=entry.rate,
                    fetched_at=entry.fetched_at,
                    cached=True,
                    stale=True,
                )
            logger.error("Exchange rate unavailable", crypto=key[0], fiat=key[1], error=str(exc))
            raise GatewayUnavailable(f"{key[0]} exchange rate service temporarily unavailable") from exc

        fresh = ExchangeRate(crypto=key[0], fiat=key[1], rate=rate, fetched_at=now)
        with self._lock:
            self._entries[key] = fresh
        logger.info("Exchange rate refreshed", crypto=key[0], fiat=key[1], rate=rate)
        return fresh

    def invalidate(self, crypto: str | None = None, fiat: str | None = None) -> None:
        """Drop cached rates, all of them or those matching ``crypto``/``fiat``."""
        with self._lock:
            if crypto is None and fiat is None:
                self._entries.clear()
                return
            for key in list(self._entries):
                if (crypto is None or key[0] == crypto.upper()) and (fiat is None or key[1] == fiat.upper()):
                    del self._entries[key]

    def expire(self, now: datetime | None = None) -> int:
        """Remove entries past the stale-grace window. Returns the number removed."""
        now = now or self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if now - entry.fetched_at >= self.stale_grace]
            for key in stale:
                del self._entries[key]
        return len(stale)
