"""Order cancellation: command and handler.

Only pending and processing orders can be cancelled. Refunding a confirmed
payment is left to the ``OrderCancelled`` side-effect handler so a gateway
outage never blocks the cancellation itself.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor = String(max_length=100, default="customer")


@storefront.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(command.reason, actor=command.actor or "customer")
        repo.add(order)
