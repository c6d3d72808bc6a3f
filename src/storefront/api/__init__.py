"""Storefront API package."""

from storefront.api.routes import admin_router, order_router, return_router, webhook_router

__all__ = ["order_router", "admin_router", "webhook_router", "return_router"]
