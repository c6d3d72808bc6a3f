"""Read-side helpers for return requests."""

from protean.utils.globals import current_domain

from storefront.returns.return_request import ReturnRequest


def get_return(return_id: str) -> ReturnRequest:
    return current_domain.repository_for(ReturnRequest).get(return_id)


def return_view(request: ReturnRequest) -> dict:
    return {
        "id": str(request.id),
        "return_number": request.return_number,
        "order_id": str(request.order_id),
        "order_number": request.order_number,
        "status": request.status,
        "items": [
            {
                "product_id": str(item.product_id),
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "refund_amount": item.refund_amount,
                "reason": item.reason,
                "description": item.description,
            }
            for item in request.items
        ],
        "total_refund": request.total_refund,
        "currency": request.currency,
        "refund_status": request.refund_status,
        "refund_reference": request.refund_reference,
        "manual_reference": request.manual_reference,
        "refund_failure_reason": request.refund_failure_reason,
        "rejection_reason": request.rejection_reason,
        "admin_notes": request.admin_notes,
        "requested_at": request.requested_at.isoformat() if request.requested_at else None,
        "refund_processed_at": request.refund_processed_at.isoformat() if request.refund_processed_at else None,
    }
