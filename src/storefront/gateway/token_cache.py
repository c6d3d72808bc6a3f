"""Bearer token cache for OAuth client-credential gateways.

Tokens are kept until ``expires_in - refresh_margin`` seconds after they
were issued. The clock is injected so tests can move time forward without
sleeping.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from storefront.utils.clock import utc_now

DEFAULT_REFRESH_MARGIN = timedelta(seconds=60)


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: datetime


class AccessTokenCache:
    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        refresh_margin: timedelta = DEFAULT_REFRESH_MARGIN,
    ) -> None:
        self._clock = clock
        self._refresh_margin = refresh_margin
        self._token: CachedToken | None = None

    def get(self) -> str | None:
        """Return the cached token, or None when missing or about to expire."""
        if self._token is None:
            return None
        if self._clock() >= self._token.expires_at:
            self._token = None
            return None
        return self._token.value

    def store(self, value: str, expires_in: int) -> None:
        lifetime = timedelta(seconds=max(0, int(expires_in))) - self._refresh_margin
        self._token = CachedToken(value=value, expires_at=self._clock() + max(lifetime, timedelta(0)))

    def invalidate(self) -> None:
        self._token = None

    @property
    def expires_at(self) -> datetime | None:
        return self._token.expires_at if self._token else None
