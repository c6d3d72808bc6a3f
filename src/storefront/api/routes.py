"""FastAPI routes for orders, payments, webhooks and returns.

Routes that can reach a payment gateway are plain ``def``: FastAPI runs them
in its threadpool, so blocking HTTP calls and retry backoff never stall the
event loop.
"""

import json
import os

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    CancelOrderRequest,
    ConfigureGatewayRequest,
    CreateOrderRequest,
    ExpireStaleRequest,
    ExpireStaleResponse,
    GatewayConfigResponse,
    IssueRefundRequest,
    OrderIdResponse,
    PaymentResultResponse,
    PaymentSessionRequest,
    PaymentSessionResponse,
    PaymentStatusResponse,
    RefundResponse,
    RefundReturnRequest,
    RejectReturnRequest,
    ReturnIdResponse,
    ReviewReturnRequest,
    StatusResponse,
    SubmitReturnRequest,
    UpdateOrderStatusRequest,
    WebhookAckResponse,
)
from storefront.gateway import get_gateway
from storefront.gateway.fake_adapter import FakeGateway
from storefront.order.cancellation import CancelOrder
from storefront.order.creation import CreateOrder
from storefront.order.expiry import expire_stale_payments
from storefront.order.payment import capture_payment, create_payment_session, refresh_payment_status
from storefront.order.queries import get_order, get_payment_status, order_view
from storefront.order.refund import issue_refund
from storefront.order.status import UpdateOrderStatus
from storefront.returns.queries import get_return, return_view
from storefront.returns.refund import refund_return
from storefront.returns.review import ApproveReturn, CloseReturn, ReceiveReturnItem, RejectReturn
from storefront.returns.submission import SubmitReturn
from storefront.webhooks.receiver import receive_webhook

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def create_order(body: CreateOrderRequest) -> OrderIdResponse:
    """Place an order for items already validated by the cart."""
    command = CreateOrder(
        customer_id=body.customer_id,
        customer_email=body.customer_email,
        items=json.dumps([item.model_dump() for item in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        payment_method=body.payment_method,
        tax=body.tax,
        shipping_cost=body.shipping_cost,
        currency=body.currency,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=result)


@order_router.get("/{order_id}")
async def read_order(order_id: str) -> dict:
    return order_view(get_order(order_id))


@order_router.post("/{order_id}/payment-session", status_code=201, response_model=PaymentSessionResponse)
def start_payment_session(order_id: str, body: PaymentSessionRequest) -> PaymentSessionResponse:
    """Open a gateway session, or return the open one for the same method."""
    return PaymentSessionResponse(**create_payment_session(order_id, body.payment_method))


@order_router.get("/{order_id}/payment-status", response_model=PaymentStatusResponse)
async def read_payment_status(order_id: str) -> PaymentStatusResponse:
    return PaymentStatusResponse(**get_payment_status(order_id))


def _payment_result(order_id: str, result: str | None) -> PaymentResultResponse:
    order = get_order(order_id)
    return PaymentResultResponse(
        order_id=order_id,
        result=result,
        payment_status=order.payment_status,
        order_status=order.status,
    )


@order_router.post("/{order_id}/payment/capture", response_model=PaymentResultResponse)
def capture(order_id: str) -> PaymentResultResponse:
    """Capture a customer-approved PayPal payment."""
    return _payment_result(order_id, capture_payment(order_id))


@order_router.post("/{order_id}/payment/refresh", response_model=PaymentResultResponse)
def refresh(order_id: str) -> PaymentResultResponse:
    """Poll the gateway for the payment's current state."""
    return _payment_result(order_id, refresh_payment_status(order_id))


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    current_domain.process(CancelOrder(order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status="cancelled")


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.put("/orders/{order_id}/status", response_model=StatusResponse)
def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> StatusResponse:
    """Admin override of the fulfillment status."""
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        admin_id=body.admin_id,
        note=body.note,
        tracking_number=body.tracking_number,
        carrier=body.carrier,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status=get_order(order_id).status)


@admin_router.post("/orders/{order_id}/refunds", status_code=201, response_model=RefundResponse)
def refund_order(order_id: str, body: IssueRefundRequest) -> RefundResponse:
    result = issue_refund(
        order_id,
        amount=body.amount,
        reason=body.reason,
        admin_id=body.admin_id,
        manual_reference=body.manual_reference,
    )
    return RefundResponse(**result)


@admin_router.post("/payments/expire-stale", response_model=ExpireStaleResponse)
def expire_stale(body: ExpireStaleRequest | None = None) -> ExpireStaleResponse:
    """Sweep for payment attempts past their window. Safe to call from any scheduler."""
    expired = expire_stale_payments(body.as_of if body else None)
    return ExpireStaleResponse(expired=expired, count=len(expired))


@admin_router.post("/gateways/{payment_method}/configure", response_model=GatewayConfigResponse)
async def configure_gateway(payment_method: str, body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway(payment_method)
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        exchange_rate=body.exchange_rate,
        refund_should_succeed=body.refund_should_succeed,
    )
    return GatewayConfigResponse(
        payment_method=payment_method,
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        refund_should_succeed=gateway.refund_should_succeed,
        exchange_rate=gateway.exchange_rate,
    )


@admin_router.put("/returns/{return_id}/approve", response_model=StatusResponse)
async def approve_return(return_id: str, body: ReviewReturnRequest) -> StatusResponse:
    current_domain.process(ApproveReturn(return_id=return_id, admin_id=body.admin_id, note=body.note), asynchronous=False)
    return StatusResponse(status="approved")


@admin_router.put("/returns/{return_id}/reject", response_model=StatusResponse)
async def reject_return(return_id: str, body: RejectReturnRequest) -> StatusResponse:
    current_domain.process(
        RejectReturn(return_id=return_id, admin_id=body.admin_id, reason=body.reason), asynchronous=False
    )
    return StatusResponse(status="rejected")


@admin_router.put("/returns/{return_id}/receive", response_model=StatusResponse)
async def receive_return(return_id: str, body: ReviewReturnRequest) -> StatusResponse:
    current_domain.process(
        ReceiveReturnItem(return_id=return_id, admin_id=body.admin_id, note=body.note), asynchronous=False
    )
    return StatusResponse(status="item_received")


@admin_router.put("/returns/{return_id}/close", response_model=StatusResponse)
async def close_return(return_id: str, body: ReviewReturnRequest) -> StatusResponse:
    current_domain.process(CloseReturn(return_id=return_id, admin_id=body.admin_id, note=body.note), asynchronous=False)
    return StatusResponse(status="closed")


@admin_router.post("/returns/{return_id}/refund", response_model=StatusResponse)
def refund_return_request(return_id: str, body: RefundReturnRequest) -> StatusResponse:
    """Refund a received return; only a provider-accepted refund completes it."""
    request = refund_return(return_id, admin_id=body.admin_id, manual_reference=body.manual_reference)
    return StatusResponse(status=request.status)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/{provider}", response_model=WebhookAckResponse)
async def payment_webhook(provider: str, request: Request) -> WebhookAckResponse:
    """Provider callback. Duplicates are acknowledged with success."""
    raw_body = await request.body()
    ack = await run_in_threadpool(receive_webhook, provider, dict(request.headers), raw_body)
    return WebhookAckResponse(**ack.to_dict())


# ---------------------------------------------------------------------------
# Return Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.post("", status_code=201, response_model=ReturnIdResponse)
async def submit_return(body: SubmitReturnRequest) -> ReturnIdResponse:
    command = SubmitReturn(
        order_id=body.order_id,
        customer_id=body.customer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
    )
    result = current_domain.process(command, asynchronous=False)
    return ReturnIdResponse(return_id=result)


@return_router.get("/{return_id}")
async def read_return(return_id: str) -> dict:
    return return_view(get_return(return_id))
