"""Gateway error taxonomy.

``GatewayUnavailable`` is transient and retryable; the others are final.
"""

from protean.exceptions import ValidationError


class GatewayError(Exception):
    """Base class for gateway failures that are not validation problems."""


class GatewayUnavailable(GatewayError):
    """Network, timeout, throttling or authentication failure talking to a provider."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidWebhookSignature(GatewayError):
    """A webhook payload failed authenticity verification."""


class MalformedWebhook(GatewayError):
    """A verified webhook payload is missing fields or is not valid JSON."""


class InvalidAmount(ValidationError):
    """Requested amount is non-positive or beyond the gateway's configured limit."""


class RefundDeclined(GatewayError):
    """The provider refused a refund, or the provider cannot refund at all."""
