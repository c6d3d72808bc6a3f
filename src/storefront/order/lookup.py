"""Payment reference lookup: find the order behind a provider reference.

Webhooks name a provider reference (PayPal order id, Bitcoin address,
GloBee payment request id), never our order id.
"""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.events import PaymentSessionStarted
from storefront.order.order import Order


def lookup_key(provider: str, reference: str) -> str:
    return f"{provider}:{reference}"


@storefront.projection
class PaymentReferenceLookup:
    key: Identifier(identifier=True, required=True)
    provider: String(required=True, max_length=50)
    reference: String(required=True, max_length=255)
    order_id: Identifier(required=True)
    started_at: DateTime()


@storefront.projector(projector_for=PaymentReferenceLookup, aggregates=[Order])
class PaymentReferenceLookupProjector:
    @on(PaymentSessionStarted)
    def on_payment_session_started(self, event):
        current_domain.repository_for(PaymentReferenceLookup).add(
            PaymentReferenceLookup(
                key=lookup_key(event.provider, event.reference),
                provider=event.provider,
                reference=event.reference,
                order_id=event.order_id,
                started_at=event.started_at,
            )
        )


def find_order_id(provider: str, reference: str) -> str | None:
    try:
        record = current_domain.repository_for(PaymentReferenceLookup).get(lookup_key(provider, reference))
    except ObjectNotFoundError:
        return None
    return str(record.order_id)
