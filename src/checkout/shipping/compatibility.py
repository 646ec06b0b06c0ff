"""Destination-region compatibility for cart lines.

Pure functions over an already-loaded country catalog. Nothing here performs
I/O, so identical inputs always produce identical results and messages.
"""

from dataclasses import dataclass

from checkout.cart.items import CartLineItem
from checkout.services.port import Country

UNRESTRICTED_REGIONS = ("worldwide", "all")
EUROPE_REGION = "europe"


@dataclass(frozen=True)
class IncompatibleItem:
    item: CartLineItem
    available_regions: tuple[str, ...]
    requested_country: str

    @property
    def reason(self) -> str:
        return f"Not available for shipping to {self.requested_country}"


def _find_country(code: str, catalog: list[Country]) -> Country | None:
    code = (code or "").upper()
    for country in catalog:
        if country.code.upper() == code:
            return country
    return None


def ships_to(item: CartLineItem, country: Country) -> bool:
    """Whether ``item``'s region list admits ``country``."""
    if item.shipping_regions is None:
        return True

    code = country.code.upper()
    for region in item.shipping_regions:
        if region.lower() in UNRESTRICTED_REGIONS:
            return True
        if region.upper() == code:
            return True
        if region.upper() == "EU" and country.region.lower() == EUROPE_REGION:
            return True
        if region.upper() == "UK" and code == "GB":
            return True
    return False


def check_compatibility(
    items: list[CartLineItem],
    country_code: str,
    catalog: list[Country],
) -> list[IncompatibleItem]:
    """Return the cart lines that cannot ship to ``country_code``.

    An empty destination, or one missing from the catalog, yields no
    incompatibilities: the catalog is the only source of region grouping and
    an unknown country cannot be judged.
    """
    if not country_code:
        return []

    country = _find_country(country_code, catalog)
    if country is None:
        return []

    return [
        IncompatibleItem(
            item=item,
            available_regions=tuple(item.shipping_regions or ()),
            requested_country=country.code.upper(),
        )
        for item in items
        if not ships_to(item, country)
    ]


def region_name(code: str, catalog: list[Country]) -> str:
    if code.lower() in UNRESTRICTED_REGIONS:
        return "Worldwide"
    if code.upper() == "EU":
        return "Europe"
    lookup = "GB" if code.upper() == "UK" else code
    country = _find_country(lookup, catalog)
    return country.name if country else code


def format_incompatibility_message(incompatible: list[IncompatibleItem], catalog: list[Country]) -> str:
    if not incompatible:
        return ""

    destination = region_name(incompatible[0].requested_country, catalog)

    if len(incompatible) == 1:
        entry = incompatible[0]
        regions = ", ".join(region_name(code, catalog) for code in entry.available_regions)
        return f'"{entry.item.name}" cannot ship to {destination}. It can only ship to: {regions}'

    names = ", ".join(f'"{entry.item.name}"' for entry in incompatible)
    return (
        f"{len(incompatible)} items in your cart cannot ship to {destination}: {names}. "
        "Please remove them to continue."
    )
