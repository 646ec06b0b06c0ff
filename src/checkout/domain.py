"""Checkout bounded context: checkout orchestration and cart reconciliation.

Drives a single checkout attempt from the cart through address capture,
shipping eligibility and rates, cart merging on login, and finally order
creation plus payment-intent issuance.
"""

from protean.domain import Domain

from checkout.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

checkout = Domain(name="checkout")
