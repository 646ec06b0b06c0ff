"""Domain events for the CheckoutSession aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="CheckoutSession")
class CheckoutStarted:
    """A checkout attempt began for a guest or an authenticated customer."""

    __version__ = 1

    session_id = Identifier(required=True)
    customer_id = Identifier()
    cart_identity = String(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class CartMergeRequested:
    """Login revealed an account cart that conflicts with the guest cart."""

    __version__ = 1

    session_id = Identifier(required=True)
    customer_id = Identifier()


@checkout.event(part_of="CheckoutSession")
class CartMergeResolved:
    """The operative cart for the rest of the session was decided."""

    __version__ = 1

    session_id = Identifier(required=True)
    resolution = String(required=True)
    cart_identity = String(required=True)


@checkout.event(part_of="CheckoutSession")
class OrderPlaced:
    """The order service accepted the order; payment is still outstanding."""

    __version__ = 1

    session_id = Identifier(required=True)
    order_number = String(required=True)
    shipping_amount = Float(required=True)
    tax_amount = Float(required=True)
    total_amount = Float(required=True)


@checkout.event(part_of="CheckoutSession")
class PaymentIntentIssued:
    """A payment intent was issued for the placed order."""

    __version__ = 1

    session_id = Identifier(required=True)
    order_number = String(required=True)
    amount = Float(required=True)


@checkout.event(part_of="CheckoutSession")
class CheckoutCompleted:
    """The payment processor confirmed capture for the order."""

    __version__ = 1

    session_id = Identifier(required=True)
    order_number = String(required=True)
    completed_at = DateTime(required=True)
