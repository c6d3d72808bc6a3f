"""Outbound HTTP for gateway adapters.

Wraps an ``httpx.Client`` with a bounded timeout and translates transport
failures, throttling and 5xx responses into ``GatewayUnavailable``. Calls
flagged ``idempotent`` are retried with exponential backoff; everything else
is sent exactly once.
"""

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.gateway.errors import GatewayUnavailable

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUS = {408, 425, 429}
_AUTH_STATUS = {401, 403}


class GatewayHttpClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        wait=None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.retry_attempts = max(1, retry_attempts)
        self.wait = wait if wait is not None else wait_exponential(multiplier=0.5, min=0.5, max=4)
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def request(self, method: str, path: str, *, idempotent: bool = False, **kwargs) -> httpx.Response:
        if not idempotent:
            return self._send(method, path, **kwargs)

        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(GatewayUnavailable),
            reraise=True,
        )
        return retrying(self._send, method, path, **kwargs)

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Gateway request timed out", method=method, path=path)
            raise GatewayUnavailable(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("Gateway request failed", method=method, path=path, error=str(exc))
            raise GatewayUnavailable(f"{method} {path} failed: {exc}") from exc

        status = response.status_code
        if status in _AUTH_STATUS:
            raise GatewayUnavailable(f"{method} {path} rejected credentials", status_code=status)
        if status in _RETRYABLE_STATUS or status >= 500:
            logger.warning("Gateway returned transient error", method=method, path=path, status_code=status)
            raise GatewayUnavailable(f"{method} {path} returned {status}", status_code=status)
        return response


def json_body(response: httpx.Response) -> dict:
    """Decode a provider response, treating garbage as a transient failure."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise GatewayUnavailable("Provider returned a non-JSON response", status_code=response.status_code) from exc
    if not isinstance(payload, dict):
        raise GatewayUnavailable("Provider returned an unexpected response shape", status_code=response.status_code)
    return payload
