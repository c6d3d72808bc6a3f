"""Admin status override: command and handler.

Bypasses payment checks but still runs the fulfillment state machine, so
structurally invalid moves (``delivered → pending``) are rejected.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class UpdateOrderStatus:
    """Move an order to a target fulfillment status on an admin's say-so."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    admin_id = String(required=True, max_length=100)
    note = String(max_length=1000)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)


@storefront.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_status(
            command.status,
            actor=command.admin_id,
            note=command.note,
            tracking_number=command.tracking_number,
            carrier=command.carrier,
        )
        repo.add(order)
