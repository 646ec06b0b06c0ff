"""Collaborator adapter factory.

Provides get_services() / set_services() to swap implementations:
- in-memory fakes for development and testing (default)
- the storefront HTTP adapters, with CHECKOUT_SERVICES_ADAPTER=http
"""

import os

from checkout.services.port import CheckoutServices

_current_services: CheckoutServices | None = None


def get_services() -> CheckoutServices:
    """Return the configured collaborators (singleton)."""
    global _current_services
    if _current_services is None:
        adapter = os.environ.get("CHECKOUT_SERVICES_ADAPTER", "fake")
        if adapter == "fake":
            from checkout.services.fake_adapter import build_fake_services

            _current_services = build_fake_services()
        elif adapter == "http":
            from checkout.services.http_adapter import build_http_services

            _current_services = build_http_services()
        else:
            raise ValueError(f"Unknown services adapter: {adapter}")
    return _current_services


def set_services(services: CheckoutServices) -> None:
    """Override the active collaborators (useful for tests)."""
    global _current_services
    _current_services = services


def reset_services() -> None:
    """Reset to the configured default."""
    global _current_services
    _current_services = None
