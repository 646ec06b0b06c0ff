"""CheckoutSession aggregate, the root of one in-memory checkout attempt.

State machine:
    FORM → CART_MERGE (only on login with conflicting carts) → FORM
    FORM → PAYMENT (order placed and payment intent issued)
    PAYMENT → COMPLETE (payment capture confirmed)

The session is never persisted beyond the attempt; it is discarded on
completion (the cart is cleared) or abandonment.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String, ValueObject

from checkout.domain import checkout
from checkout.session.events import (
    CartMergeRequested,
    CartMergeResolved,
    CheckoutCompleted,
    CheckoutStarted,
    OrderPlaced,
    PaymentIntentIssued,
)

CUSTOMER_FIELDS = ("name", "email", "phone", "address1", "address2", "city", "state", "zip", "country")
ADDRESS_FIELDS = ("address1", "address2", "city", "state", "zip", "country")


class CheckoutStep(Enum):
    FORM = "form"
    CART_MERGE = "cart-merge"
    PAYMENT = "payment"
    COMPLETE = "complete"


class CartIdentity(Enum):
    GUEST = "guest"
    ACCOUNT = "account"


@checkout.value_object(part_of="CheckoutSession")
class CustomerInfo:
    """Contact details plus a single postal address.

    Replaced wholesale on every edit (value object semantics).
    """

    name = String(max_length=200, default="")
    email = String(max_length=254, default="")
    phone = String(max_length=30, default="")
    address1 = String(max_length=255, default="")
    address2 = String(max_length=255, default="")
    city = String(max_length=100, default="")
    state = String(max_length=100, default="")
    zip = String(max_length=20, default="")
    country = String(max_length=2, default="")

    def as_dict(self) -> dict[str, str]:
        return {field: getattr(self, field) or "" for field in CUSTOMER_FIELDS}

    def merged(self, **updates) -> "CustomerInfo":
        unknown = set(updates) - set(CUSTOMER_FIELDS)
        if unknown:
            raise ValidationError({field: ["Unknown customer field"] for field in sorted(unknown)})

        data = self.as_dict()
        data.update({key: value or "" for key, value in updates.items()})
        return CustomerInfo(**data)


@checkout.aggregate
class CheckoutSession:
    step = String(choices=CheckoutStep, default=CheckoutStep.FORM.value)
    customer_id = Identifier()
    customer_info = ValueObject(CustomerInfo)
    cart_identity = String(choices=CartIdentity, default=CartIdentity.GUEST.value)
    selected_rate_id = String(max_length=100)
    shipping_amount = Float(default=0.0)
    tax_amount = Float(default=0.0)
    total_amount = Float(default=0.0)
    wants_to_signup = Boolean(default=False)
    order_number = String(max_length=100)
    client_secret = String(max_length=255)
    started_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def payment_requires_client_secret(self):
        if self.step in (CheckoutStep.PAYMENT.value, CheckoutStep.COMPLETE.value) and not self.client_secret:
            raise ValidationError({"client_secret": ["Payment cannot start without a client secret"]})

    @invariant.post
    def payment_requires_order(self):
        if self.step in (CheckoutStep.PAYMENT.value, CheckoutStep.COMPLETE.value) and not self.order_number:
            raise ValidationError({"order_number": ["Payment cannot start before an order exists"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None, customer_info=None):
        now = datetime.now(UTC)
        identity = CartIdentity.ACCOUNT if customer_id else CartIdentity.GUEST
        session = cls(
            step=CheckoutStep.FORM.value,
            customer_id=customer_id,
            customer_info=customer_info or CustomerInfo(),
            cart_identity=identity.value,
            started_at=now,
            updated_at=now,
        )
        session.raise_(
            CheckoutStarted(
                session_id=str(session.id),
                customer_id=str(customer_id) if customer_id else None,
                cart_identity=identity.value,
                started_at=now,
            )
        )
        return session

    # -------------------------------------------------------------------
    # Form editing
    # -------------------------------------------------------------------
    def _require_step(self, *steps, action):
        if CheckoutStep(self.step) not in steps:
            raise ValidationError({"step": [f"Cannot {action} while checkout is in step '{self.step}'"]})

    def update_customer_info(self, **updates):
        self._require_step(CheckoutStep.FORM, action="edit customer information")
        self.customer_info = self.customer_info.merged(**updates)
        self.updated_at = datetime.now(UTC)

    def select_rate(self, rate_id, shipping_amount):
        self._require_step(CheckoutStep.FORM, action="select a shipping rate")
        self.selected_rate_id = rate_id
        self.shipping_amount = shipping_amount or 0.0
        self.updated_at = datetime.now(UTC)

    def clear_rate(self):
        self.selected_rate_id = None
        self.shipping_amount = 0.0

    def set_signup_intent(self, wants_to_signup):
        self._require_step(CheckoutStep.FORM, action="change account creation")
        self.wants_to_signup = bool(wants_to_signup)

    # -------------------------------------------------------------------
    # Authentication and cart merge
    # -------------------------------------------------------------------
    def authenticate(self, customer_id):
        self._require_step(CheckoutStep.FORM, action="log in")
        self.customer_id = customer_id
        self.updated_at = datetime.now(UTC)

    def request_cart_merge(self):
        self._require_step(CheckoutStep.FORM, action="start a cart merge")
        self.step = CheckoutStep.CART_MERGE.value
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartMergeRequested(
                session_id=str(self.id),
                customer_id=str(self.customer_id) if self.customer_id else None,
            )
        )

    def resolve_cart_merge(self, resolution, cart_identity):
        """Record which cart is operative and return to the form.

        Also used when the merge dialog is skipped (``resolution`` is then
        one of the automatic outcomes and the session is still in FORM).
        """
        self._require_step(CheckoutStep.CART_MERGE, CheckoutStep.FORM, action="resolve a cart merge")
        identity = CartIdentity(cart_identity)
        self.step = CheckoutStep.FORM.value
        self.cart_identity = identity.value
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartMergeResolved(
                session_id=str(self.id),
                resolution=resolution,
                cart_identity=identity.value,
            )
        )

    # -------------------------------------------------------------------
    # Order and payment
    # -------------------------------------------------------------------
    def record_order(self, order_number, shipping_amount, tax_amount, total_amount):
        self._require_step(CheckoutStep.FORM, action="place an order")
        if self.order_number:
            raise ValidationError({"order_number": [f"Order {self.order_number} was already placed"]})

        self.order_number = order_number
        self.shipping_amount = shipping_amount
        self.tax_amount = tax_amount
        self.total_amount = total_amount
        self.updated_at = datetime.now(UTC)
        self.raise_(
            OrderPlaced(
                session_id=str(self.id),
                order_number=order_number,
                shipping_amount=shipping_amount,
                tax_amount=tax_amount,
                total_amount=total_amount,
            )
        )

    def enter_payment(self, client_secret):
        self._require_step(CheckoutStep.FORM, action="start payment")
        if not client_secret:
            raise ValidationError({"client_secret": ["A payment client secret is required"]})

        with atomic_change(self):
            self.client_secret = client_secret
            self.step = CheckoutStep.PAYMENT.value
            self.updated_at = datetime.now(UTC)

        self.raise_(
            PaymentIntentIssued(
                session_id=str(self.id),
                order_number=self.order_number,
                amount=self.total_amount,
            )
        )

    def complete(self):
        self._require_step(CheckoutStep.PAYMENT, action="complete checkout")
        now = datetime.now(UTC)
        self.step = CheckoutStep.COMPLETE.value
        self.updated_at = now
        self.raise_(
            CheckoutCompleted(
                session_id=str(self.id),
                order_number=self.order_number,
                completed_at=now,
            )
        )
