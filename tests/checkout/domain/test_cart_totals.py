"""Tests for cart line items, cart signatures and order totals."""

from checkout.cart.items import CartLineItem, cart_signature
from checkout.cart.totals import DEFAULT_FLAT_SHIPPING, compute_totals


class TestCartLineItem:
    def test_line_total(self, make_item):
        assert make_item(unit_price=19.99, quantity=3).line_total == 59.97

    def test_from_storefront_payload(self):
        item = CartLineItem.from_dict(
            {
                "id": 17,
                "product_id": 3,
                "printful_variant_id": 4012,
                "product_name": "Glitch Tee",
                "price": "24.00",
                "quantity": 2,
                "printful_availability_regions": ["US", "EU"],
            }
        )
        assert item.id == "17"
        assert item.variant_id == "4012"
        assert item.name == "Glitch Tee"
        assert item.unit_price == 24.0
        assert item.shipping_regions == ("US", "EU")

    def test_missing_regions_mean_unrestricted(self):
        item = CartLineItem.from_dict({"id": "1", "variant_id": "9", "name": "Sticker", "unit_price": 3})
        assert item.shipping_regions is None
        assert item.source == "printful"

    def test_to_dict_formats_price(self, make_item):
        assert make_item(unit_price=5).to_dict()["price"] == "5.00"


class TestCartSignature:
    def test_order_independent(self, make_item):
        first = [make_item(item_id="a", variant_id="1"), make_item(item_id="b", variant_id="2", quantity=2)]
        second = list(reversed(first))
        assert cart_signature(first) == cart_signature(second)

    def test_quantity_matters(self, make_item):
        assert cart_signature([make_item(quantity=1)]) != cart_signature([make_item(quantity=2)])

    def test_line_ids_do_not_matter(self, make_item):
        assert cart_signature([make_item(item_id="local-1")]) == cart_signature([make_item(item_id="server-88")])


class TestComputeTotals:
    def test_selected_rate_is_used(self, make_item):
        totals = compute_totals([make_item(unit_price=20.0)], 4.99)
        assert totals.subtotal == 20.0
        assert totals.shipping == 4.99
        assert totals.tax == 1.6
        assert totals.total == 26.59

    def test_flat_shipping_without_a_rate(self, make_item):
        totals = compute_totals([make_item(unit_price=20.0)])
        assert totals.shipping == DEFAULT_FLAT_SHIPPING

    def test_empty_cart_ships_free(self):
        totals = compute_totals([])
        assert totals.as_dict() == {"subtotal": 0.0, "shipping": 0.0, "tax": 0.0, "total": 0.0}

    def test_tax_rate_from_environment(self, make_item, monkeypatch):
        monkeypatch.setenv("CHECKOUT_TAX_RATE", "0.1")
        assert compute_totals([make_item(unit_price=50.0)], 0).tax == 5.0

    def test_flat_shipping_from_environment(self, make_item, monkeypatch):
        monkeypatch.setenv("CHECKOUT_FLAT_SHIPPING", "7.5")
        assert compute_totals([make_item()]).shipping == 7.5
