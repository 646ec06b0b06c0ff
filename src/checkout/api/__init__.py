"""Checkout domain API package."""

from checkout.api.routes import register_exception_handlers, router

__all__ = ["router", "register_exception_handlers"]
