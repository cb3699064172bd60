"""Ordering domain API package."""

from ordering.api.errors import register_error_handlers
from ordering.api.routes import checkout_router, order_router, webhook_router

__all__ = ["checkout_router", "order_router", "webhook_router", "register_error_handlers"]
