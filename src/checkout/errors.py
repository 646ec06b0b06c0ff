"""Checkout failure taxonomy.

Every external call made during checkout is caught at its own boundary and
normalized into one of these kinds before the state machine sees it. Local
rule violations use Protean's ``ValidationError`` (``{field: [messages]}``),
the same way the aggregates report them.
"""

from enum import Enum


class CheckoutError(Exception):
    """Base class for normalized checkout failures."""

    kind = "checkout_error"
    blocks_submission = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class LookupDegraded(CheckoutError):
    """A postal, location or rate lookup failed. Never fatal."""

    kind = "lookup_degraded"

    def __init__(self, message: str, source: str) -> None:
        super().__init__(message)
        self.source = source


class InventoryUnavailable(CheckoutError):
    """One or more cart lines cannot be purchased right now.

    ``items`` holds one ``(variant_id, name, reason)`` triple per offending
    line so the caller can offer per-item removal.
    """

    kind = "inventory_unavailable"

    def __init__(self, message: str, items: tuple = ()) -> None:
        super().__init__(message)
        self.items = tuple(items)

    @property
    def variant_ids(self) -> list[str]:
        return [variant_id for variant_id, _, _ in self.items]


class ShippingRestriction(CheckoutError):
    """Cart lines that cannot ship to the current destination country."""

    kind = "shipping_restriction"
    blocks_submission = True

    def __init__(self, message: str, incompatible: list) -> None:
        super().__init__(message)
        self.incompatible = list(incompatible)

    @property
    def item_ids(self) -> list[str]:
        return [entry.item.id for entry in self.incompatible]


class SubmissionFailureKind(Enum):
    NETWORK = "network"
    REJECTED = "rejected"
    PAYMENT_INTENT = "payment_intent"


class OrderSubmissionFailure(CheckoutError):
    """Order creation or payment-intent issuance failed.

    ``NETWORK`` failures created no order and can be resubmitted.
    ``REJECTED`` carries the service's business message verbatim.
    ``PAYMENT_INTENT`` means the order exists (``order_number``) but is unpaid.
    """

    kind = "order_submission_failure"

    def __init__(
        self,
        message: str,
        failure_kind: SubmissionFailureKind,
        order_number: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.failure_kind = failure_kind
        self.order_number = order_number
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.failure_kind in (SubmissionFailureKind.NETWORK, SubmissionFailureKind.PAYMENT_INTENT)
