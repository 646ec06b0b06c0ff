"""Cart line items as handed to checkout by the cart collaborators."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CartLineItem:
    """One cart line.

    ``shipping_regions`` lists the region codes the fulfilling back-end can
    ship to (country codes, ``EU``, ``UK``, ``worldwide``/``all``). ``None``
    means the line carries no restriction.
    """

    id: str
    product_id: str
    variant_id: str
    name: str
    unit_price: float
    quantity: int = 1
    size: str = ""
    color: str = ""
    source: str = "printful"
    shipping_regions: tuple[str, ...] | None = None
    image_url: str = ""
    extra: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def line_total(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    @classmethod
    def from_dict(cls, data: dict) -> "CartLineItem":
        regions = data.get("shipping_regions")
        if regions is None:
            regions = data.get("printful_availability_regions") or data.get("availability_regions")
        return cls(
            id=str(data["id"]),
            product_id=str(data.get("product_id", "")),
            variant_id=str(data.get("printful_variant_id") or data["variant_id"]),
            name=data.get("product_name") or data.get("name", ""),
            unit_price=float(data.get("unit_price", data.get("price", 0)) or 0),
            quantity=int(data.get("quantity", 1)),
            size=data.get("size") or "",
            color=data.get("color") or "",
            source=data.get("source") or "printful",
            shipping_regions=tuple(regions) if regions is not None else None,
            image_url=data.get("image_url") or data.get("thumbnail_url") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.name,
            "price": f"{self.unit_price:.2f}",
            "quantity": self.quantity,
            "image_url": self.image_url,
            "size": self.size,
            "color": self.color,
            "source": self.source,
            "shipping_regions": list(self.shipping_regions) if self.shipping_regions is not None else None,
        }


def cart_signature(items: list[CartLineItem]) -> tuple:
    """Order-independent identity of a cart's contents."""
    return tuple(sorted((item.variant_id, item.quantity) for item in items))
