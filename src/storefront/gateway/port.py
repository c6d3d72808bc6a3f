"""Payment gateway port (abstract interface).

Every provider adapter exposes the same operations, so the order model
never needs to know which provider it is talking to. An adapter creates a
payment, captures it (synchronous providers only), polls its status,
verifies and parses webhooks and issues refunds. Adapters are selected by
the order's ``payment_method``.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from protean.exceptions import ValidationError

from storefront.gateway.errors import InvalidAmount


class PaymentMethod(Enum):
    PAYPAL = "paypal"
    BITCOIN = "bitcoin"
    MONERO = "monero"
    CASH_ON_DELIVERY = "cash_on_delivery"


GATEWAY_METHODS = (PaymentMethod.PAYPAL, PaymentMethod.BITCOIN, PaymentMethod.MONERO)


class NotificationKind(Enum):
    PAYMENT = "payment"  # Funds observed; evaluate against the confirmation policy
    PENDING = "pending"  # Informational only
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PaymentSession:
    """A gateway session created for an order."""

    provider: str
    reference: str
    amount_due: float
    currency: str
    expires_at: datetime
    confirmations_required: int = 0
    address: str | None = None
    redirect_url: str | None = None
    fiat_amount: float | None = None
    fiat_currency: str | None = None
    exchange_rate: float | None = None


@dataclass(frozen=True)
class PaymentNotification:
    """Provider-neutral view of a webhook, capture response or status poll."""

    provider: str
    reference: str
    kind: NotificationKind
    event_id: str | None = None
    confirmations: int = 0
    amount_received: float = 0.0
    transaction_hash: str | None = None
    capture_id: str | None = None
    provider_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup that works for plain dicts too."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    provider: str = ""
    confirmations_required: int = 0
    max_amount: float | None = None

    @property
    def webhook_secret(self) -> str:
        """Secret passed to ``verify_webhook`` for inbound deliveries."""
        return ""

    def check_amount(self, amount: float) -> None:
        if amount is None or amount <= 0:
            raise InvalidAmount({"amount": ["Amount must be greater than zero"]})
        if self.max_amount is not None and amount > self.max_amount:
            raise InvalidAmount({"amount": [f"Amount exceeds the {self.provider} limit of {self.max_amount:.2f}"]})

    @abstractmethod
    def create_payment(self, order_reference: str, amount: float, currency: str) -> PaymentSession:
        """Open a payment session for ``amount`` in fiat ``currency``."""
        ...

    def capture(self, reference: str) -> PaymentNotification:
        """Capture an approved payment. Only synchronous providers support this."""
        raise ValidationError({"payment_method": [f"{self.provider} payments settle asynchronously and cannot be captured"]})

    @abstractmethod
    def check_status(self, reference: str, transaction_hash: str | None = None) -> PaymentNotification:
        """Poll the provider for the current state of a session. Safe to repeat."""
        ...

    @abstractmethod
    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes, secret: str) -> bool:
        """Return True only if the payload is authentically from the provider."""
        ...

    @abstractmethod
    def parse_webhook(self, raw_body: bytes) -> PaymentNotification:
        """Translate a verified payload. Raises MalformedWebhook."""
        ...

    @abstractmethod
    def refund(self, payment_reference: str, amount: float, currency: str, idempotency_key: str) -> RefundResult:
        """Refund part or all of a settled payment."""
        ...
