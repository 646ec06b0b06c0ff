"""Order creation and payment-intent handshake.

Two submission paths, chosen by identity:

- an authenticated customer who is not registering places the order in one
  call with their bearer token;
- a guest (or a customer registering during checkout) goes through a
  two-phase guest checkout: open a session, then complete it. The phase is
  tracked in ``GuestCheckoutState`` so a completion that failed on the
  network is retried with the same session token.

Every collaborator failure leaves this module as ``OrderSubmissionFailure``.
"""

from dataclasses import dataclass
from enum import Enum

import structlog
from protean.exceptions import InvalidOperationError

from checkout.cart.items import CartLineItem
from checkout.cart.totals import OrderTotals
from checkout.errors import OrderSubmissionFailure, SubmissionFailureKind
from checkout.services.port import (
    OrderService,
    PaymentConfirmation,
    PaymentIntent,
    PaymentProcessor,
    PlacedOrder,
    ServiceError,
    ShippingRateOption,
)

logger = structlog.get_logger(__name__)

NETWORK_FAILURE_MESSAGE = "We couldn't reach the order service. Please try again."
PAYMENT_INTENT_FAILURE_MESSAGE = "Your order was created but payment could not be started. Please retry payment."


class GuestCheckoutPhase(Enum):
    NEW = "new"
    SESSION_CREATED = "session_created"
    COMPLETED = "completed"


@dataclass
class GuestCheckoutState:
    phase: GuestCheckoutPhase = GuestCheckoutPhase.NEW
    session_token: str | None = None
    fingerprint: tuple | None = None

    def reset(self) -> None:
        self.phase = GuestCheckoutPhase.NEW
        self.session_token = None
        self.fingerprint = None


def shipping_address_payload(values: dict) -> dict:
    return {
        "name": values["name"],
        "address1": values["address1"],
        "address2": values["address2"],
        "city": values["city"],
        "state": values["state"],
        "zip": values["zip"],
        "country": values["country"],
        "phone": values["phone"],
    }


def cart_items_payload(items: list[CartLineItem]) -> list[dict]:
    return [
        {
            "product_id": item.product_id,
            "variant_id": item.variant_id,
            "product_name": item.name,
            "price": f"{item.unit_price:.2f}",
            "quantity": item.quantity,
            "image_url": item.image_url,
            "size": item.size,
            "color": item.color,
            "source": item.source,
        }
        for item in items
    ]


def _fingerprint(payload: dict) -> tuple:
    items = tuple((entry["variant_id"], entry["quantity"]) for entry in payload["cartItems"])
    address = tuple(sorted(payload["shippingAddress"].items()))
    return payload["email"], address, items, payload["totals"]["total"]


class OrderSubmissionGateway:
    def __init__(self, orders: OrderService, payments: PaymentProcessor, payment_method: str = "stripe") -> None:
        self.orders = orders
        self.payments = payments
        self.payment_method = payment_method
        self.guest_state = GuestCheckoutState()

    @staticmethod
    def classify(exc: ServiceError) -> OrderSubmissionFailure:
        if exc.retryable:
            return OrderSubmissionFailure(
                NETWORK_FAILURE_MESSAGE,
                SubmissionFailureKind.NETWORK,
                status_code=exc.status_code,
            )
        return OrderSubmissionFailure(exc.message, SubmissionFailureKind.REJECTED, status_code=exc.status_code)

    def _base_payload(
        self,
        values: dict,
        items: list[CartLineItem],
        totals: OrderTotals,
        rate: ShippingRateOption | None,
    ) -> dict:
        address = shipping_address_payload(values)
        return {
            "email": values["email"],
            "shippingAddress": address,
            "billingAddress": dict(address),
            "cartItems": cart_items_payload(items),
            "shippingOption": {"id": rate.id, "name": rate.name, "price": rate.price} if rate else None,
            "totals": totals.as_dict(),
            "paymentMethod": self.payment_method,
            "customerNotes": "",
        }

    async def submit_authenticated(
        self,
        token: str,
        info,
        items: list[CartLineItem],
        totals: OrderTotals,
        rate: ShippingRateOption | None = None,
    ) -> PlacedOrder:
        payload = self._base_payload(info.as_dict(), items, totals, rate)
        try:
            order = await self.orders.create_order(token, payload)
        except ServiceError as exc:
            failure = self.classify(exc)
            logger.warning("order_creation_failed", path="authenticated", kind=failure.failure_kind.value)
            raise failure from exc

        logger.info("order_created", path="authenticated", order_number=order.order_number)
        return order

    async def submit_guest(
        self,
        info,
        items: list[CartLineItem],
        totals: OrderTotals,
        rate: ShippingRateOption | None = None,
        credentials: dict | None = None,
    ) -> PlacedOrder:
        values = info.as_dict()
        payload = self._base_payload(values, items, totals, rate)
        payload["customerInfo"] = {key: values[key] for key in ("name", "email", "phone")}
        state = self.guest_state

        if state.phase is GuestCheckoutPhase.COMPLETED:
            raise InvalidOperationError("This guest checkout was already completed")

        fingerprint = _fingerprint(payload)
        if state.phase is GuestCheckoutPhase.SESSION_CREATED and state.fingerprint != fingerprint:
            logger.info("guest_checkout_session_discarded", reason="order details changed")
            state.reset()

        if state.phase is GuestCheckoutPhase.NEW:
            try:
                ticket = await self.orders.create_guest_checkout(payload)
            except ServiceError as exc:
                failure = self.classify(exc)
                logger.warning("guest_checkout_session_failed", kind=failure.failure_kind.value)
                raise failure from exc
            state.phase = GuestCheckoutPhase.SESSION_CREATED
            state.session_token = ticket.session_token
            state.fingerprint = fingerprint

        try:
            order = await self.orders.process_checkout(state.session_token, self.payment_method, credentials)
        except ServiceError as exc:
            failure = self.classify(exc)
            if failure.failure_kind is SubmissionFailureKind.REJECTED:
                state.reset()
            logger.warning(
                "guest_checkout_completion_failed",
                kind=failure.failure_kind.value,
                phase=state.phase.value,
            )
            raise failure from exc

        state.phase = GuestCheckoutPhase.COMPLETED
        logger.info("order_created", path="guest", order_number=order.order_number, registering=bool(credentials))
        return order

    async def create_payment_intent(self, amount: float, order_number: str, email: str) -> PaymentIntent:
        """Request a payment intent; the returned intent always carries a client secret."""
        try:
            intent = await self.payments.create_payment_intent(round(amount, 2), order_number, email)
        except ServiceError as exc:
            logger.warning("payment_intent_failed", order_number=order_number, error=exc.message)
            raise OrderSubmissionFailure(
                PAYMENT_INTENT_FAILURE_MESSAGE,
                SubmissionFailureKind.PAYMENT_INTENT,
                order_number=order_number,
                status_code=exc.status_code,
            ) from exc

        if not intent.success or not intent.client_secret:
            logger.warning("payment_intent_refused", order_number=order_number, error=intent.error)
            message = intent.error or PAYMENT_INTENT_FAILURE_MESSAGE
            raise OrderSubmissionFailure(message, SubmissionFailureKind.PAYMENT_INTENT, order_number=order_number)

        logger.info("payment_intent_created", order_number=order_number, amount=round(amount, 2))
        return intent

    async def confirm_payment(self, payment_intent_id: str, order_number: str) -> PaymentConfirmation:
        try:
            confirmation = await self.payments.confirm_payment(payment_intent_id, order_number)
        except ServiceError as exc:
            raise OrderSubmissionFailure(
                exc.message if not exc.retryable else NETWORK_FAILURE_MESSAGE,
                SubmissionFailureKind.PAYMENT_INTENT,
                order_number=order_number,
                status_code=exc.status_code,
            ) from exc

        if not confirmation.success:
            raise OrderSubmissionFailure(
                confirmation.error or "Payment could not be confirmed",
                SubmissionFailureKind.PAYMENT_INTENT,
                order_number=order_number,
            )
        return confirmation
