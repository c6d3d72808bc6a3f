"""Order creation: command and handler.

Stock and address checks happen upstream; this only records the order
and books inventory for it.
"""

import json

from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class CreateOrder:
    """Place an order for already-validated items."""

    customer_id = Identifier(required=True)
    customer_email = String(max_length=255)
    items = Text(required=True)  # JSON list of {product_id, product_name, quantity, unit_price}
    shipping_address = Text(required=True)  # JSON object
    payment_method = String(required=True, max_length=50)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    currency = String(max_length=3, default="GBP")


@storefront.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )
        order = Order.create(
            customer_id=command.customer_id,
            items_data=items_data,
            shipping_address=address,
            payment_method=command.payment_method,
            customer_email=command.customer_email,
            tax=command.tax or 0.0,
            shipping_cost=command.shipping_cost or 0.0,
            currency=command.currency or "GBP",
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)
