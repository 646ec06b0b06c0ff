"""Order totals shown during checkout and sent with the payment intent."""

import os
from dataclasses import dataclass

from checkout.cart.items import CartLineItem

DEFAULT_TAX_RATE = 0.08
DEFAULT_FLAT_SHIPPING = 5.99


def tax_rate() -> float:
    return float(os.environ.get("CHECKOUT_TAX_RATE", DEFAULT_TAX_RATE))


def flat_shipping() -> float:
    return float(os.environ.get("CHECKOUT_FLAT_SHIPPING", DEFAULT_FLAT_SHIPPING))


@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    shipping: float
    tax: float

    @property
    def total(self) -> float:
        return round(self.subtotal + self.shipping + self.tax, 2)

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "shipping": self.shipping,
            "tax": self.tax,
            "total": self.total,
        }


def compute_totals(items: list[CartLineItem], shipping_amount: float | None = None) -> OrderTotals:
    """Subtotal, shipping and tax for ``items``.

    ``shipping_amount`` is the price of the selected live rate. Without one
    the flat fallback rate applies; an empty cart ships for nothing. Tax is
    charged on the subtotal only.
    """
    subtotal = round(sum(item.line_total for item in items), 2)
    if not items:
        shipping = 0.0
    elif shipping_amount is None:
        shipping = flat_shipping()
    else:
        shipping = round(shipping_amount, 2)
    tax = round(subtotal * tax_rate(), 2)
    return OrderTotals(subtotal=subtotal, shipping=shipping, tax=tax)
