"""Pydantic API schemas for the storefront.

These are the external API contracts, kept apart from domain commands.
The API layer translates between these schemas and commands or services.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class OrderItemRequest(BaseModel):
    product_id: str
    product_name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class ShippingAddressRequest(BaseModel):
    full_name: str
    street: str
    city: str
    postal_code: str
    country: str
    phone: str | None = None


class CreateOrderRequest(BaseModel):
    customer_id: str
    customer_email: str | None = None
    items: list[OrderItemRequest]
    shipping_address: ShippingAddressRequest
    payment_method: str
    tax: float = 0.0
    shipping_cost: float = 0.0
    currency: str = "GBP"


class PaymentSessionRequest(BaseModel):
    payment_method: str


class CancelOrderRequest(BaseModel):
    reason: str


class UpdateOrderStatusRequest(BaseModel):
    status: str
    admin_id: str
    note: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None


class IssueRefundRequest(BaseModel):
    amount: float
    reason: str
    admin_id: str
    manual_reference: str | None = None


class ExpireStaleRequest(BaseModel):
    as_of: datetime | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Payment declined"
    exchange_rate: float | None = None
    refund_should_succeed: bool | None = None


class ReturnItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    reason: str
    description: str | None = None


class SubmitReturnRequest(BaseModel):
    order_id: str
    customer_id: str
    items: list[ReturnItemRequest]


class ReviewReturnRequest(BaseModel):
    admin_id: str
    note: str | None = None


class RejectReturnRequest(BaseModel):
    admin_id: str
    reason: str


class RefundReturnRequest(BaseModel):
    admin_id: str
    manual_reference: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str


class ReturnIdResponse(BaseModel):
    return_id: str


class StatusResponse(BaseModel):
    status: str


class PaymentSessionResponse(BaseModel):
    order_id: str
    order_number: str
    provider: str
    reference: str
    address: str | None = None
    redirect_url: str | None = None
    amount_due: float
    currency: str
    fiat_amount: float | None = None
    fiat_currency: str | None = None
    exchange_rate: float | None = None
    confirmations_required: int = 0
    expires_at: datetime
    reused: bool = False


class PaymentStatusResponse(BaseModel):
    order_id: str
    order_status: str
    payment_status: str
    provider: str
    confirmations: int = 0
    confirmations_required: int = 0
    amount_due: float
    amount_received: float = 0.0
    expires_at: str | None = None
    message: str
    history: list[str] = []


class PaymentResultResponse(BaseModel):
    order_id: str
    result: str | None = None
    payment_status: str
    order_status: str


class RefundResponse(BaseModel):
    refund_id: str
    amount: float
    gateway_refund_id: str | None = None
    manual_reference: str | None = None


class ExpireStaleResponse(BaseModel):
    expired: list[str]
    count: int


class GatewayConfigResponse(BaseModel):
    payment_method: str
    gateway: str
    should_succeed: bool
    failure_reason: str
    refund_should_succeed: bool
    exchange_rate: float | None = None


class WebhookAckResponse(BaseModel):
    received: bool = True
    provider: str
    event_id: str | None = None
    outcome: str
    duplicate: bool = False
