"""HTTP mapping for payment gateway failures.

Protean's own exceptions are mapped by ``register_exception_handlers``;
these cover the gateway layer. Customers never see provider error text.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.gateway.errors import (
    GatewayError,
    GatewayUnavailable,
    InvalidWebhookSignature,
    MalformedWebhook,
    RefundDeclined,
)


def register_gateway_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayUnavailable)
    async def gateway_unavailable_handler(request: Request, exc: GatewayUnavailable) -> JSONResponse:
        return JSONResponse(status_code=503, content={"error": "Payment provider unavailable, please try again"})

    @app.exception_handler(InvalidWebhookSignature)
    async def invalid_signature_handler(request: Request, exc: InvalidWebhookSignature) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": "Invalid webhook signature"})

    @app.exception_handler(MalformedWebhook)
    async def malformed_webhook_handler(request: Request, exc: MalformedWebhook) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RefundDeclined)
    async def refund_declined_handler(request: Request, exc: RefundDeclined) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": str(exc)})

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"error": "Payment provider error"})
