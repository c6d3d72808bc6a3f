"""Return submission: command and handler.

Only delivered orders can be returned, within 30 days of delivery, for no
more than was ordered, and with at most one open request per order.
"""

import json
from collections import Counter
from datetime import timedelta

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order
from storefront.order.state_machine import OrderStatus
from storefront.returns.return_request import OPEN_STATUSES, RETURN_WINDOW_DAYS, ReturnReason, ReturnRequest
from storefront.utils.clock import as_utc, utc_now


@storefront.command(part_of="ReturnRequest")
class SubmitReturn:
    """Request a return of some or all items of a delivered order."""

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {product_id, quantity, reason, description}
    requested_at = DateTime()


@storefront.command_handler(part_of=ReturnRequest)
class SubmitReturnHandler:
    @handle(SubmitReturn)
    def submit_return(self, command):
        now = command.requested_at or utc_now()
        order = current_domain.repository_for(Order).get(command.order_id)
        requested = json.loads(command.items) if isinstance(command.items, str) else command.items

        if str(order.customer_id) != str(command.customer_id):
            raise ValidationError({"order_id": ["Order does not belong to this customer"]})
        if order.status != OrderStatus.DELIVERED.value:
            raise ValidationError({"order_id": ["Only delivered orders can be returned"]})
        if order.delivered_at is None or as_utc(now) > as_utc(order.delivered_at) + timedelta(days=RETURN_WINDOW_DAYS):
            raise ValidationError({"order_id": [f"Returns must be requested within {RETURN_WINDOW_DAYS} days of delivery"]})

        repo = current_domain.repository_for(ReturnRequest)
        existing = repo._dao.query.filter(order_id=str(order.id)).all().items
        if any(request.status in OPEN_STATUSES for request in existing):
            raise ValidationError({"order_id": ["This order already has an open return request"]})

        ordered = {str(item.product_id): item for item in order.items}
        quantities = Counter()
        items_data = []
        for line in requested:
            product_id = str(line.get("product_id"))
            item = ordered.get(product_id)
            if item is None:
                raise ValidationError({"items": [f"Product {product_id} is not part of this order"]})
            if line.get("reason") not in {reason.value for reason in ReturnReason}:
                raise ValidationError({"items": [f"Invalid return reason: {line.get('reason')}"]})
            quantity = int(line.get("quantity", 0))
            quantities[product_id] += quantity
            if quantity < 1 or quantities[product_id] > item.quantity:
                raise ValidationError(
                    {"items": [f"Return quantity for {item.product_name} must be between 1 and {item.quantity}"]}
                )
            items_data.append(
                {
                    "product_id": product_id,
                    "product_name": item.product_name,
                    "quantity": quantity,
                    "unit_price": item.unit_price,
                    "reason": line["reason"],
                    "description": line.get("description"),
                }
            )

        request = ReturnRequest.create(
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(order.customer_id),
            items_data=items_data,
            customer_email=order.customer_email,
            currency=order.currency,
            now=now,
        )
        repo.add(request)
        return str(request.id)
