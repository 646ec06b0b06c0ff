import pytest
from protean.integrations.pytest import DomainFixture

from checkout.cart.items import CartLineItem
from checkout.cart.store import LocalCartStore
from checkout.services import reset_services, set_services
from checkout.services.fake_adapter import build_fake_services
from checkout.session.machine import CheckoutStateMachine


@pytest.fixture(scope="session")
def checkout_bed():
    from checkout.domain import checkout

    bed = DomainFixture(checkout)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(checkout_bed):
    with checkout_bed.domain_context():
        yield


@pytest.fixture()
def services():
    """A fresh set of in-memory collaborators, installed as the active adapters."""
    bundle = build_fake_services()
    set_services(bundle)
    yield bundle
    reset_services()


def build_item(
    item_id="line-1",
    variant_id="4012",
    name="Glitch Tee",
    unit_price=20.0,
    quantity=1,
    shipping_regions=None,
    source="printful",
):
    return CartLineItem(
        id=item_id,
        product_id=f"prod-{variant_id}",
        variant_id=variant_id,
        name=name,
        unit_price=unit_price,
        quantity=quantity,
        source=source,
        shipping_regions=tuple(shipping_regions) if shipping_regions is not None else None,
    )


@pytest.fixture()
def make_item():
    return build_item


@pytest.fixture()
def us_item():
    return build_item(shipping_regions=["US"])


HAPPY_CUSTOMER = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "+13105551234",
    "address1": "9641 Sunset Blvd",
    "city": "Beverly Hills",
    "zip": "90210",
    "country": "US",
    "state": "CA",
}


@pytest.fixture()
def happy_customer():
    return dict(HAPPY_CUSTOMER)


@pytest.fixture()
def start_checkout(services):
    """Start a checkout over a guest cart (a US-only tee by default)."""

    async def _start(items=None, auth=None, inventory_sources=None):
        if items is None:
            items = [build_item(shipping_regions=["US"])]
        machine = CheckoutStateMachine(
            services,
            guest_store=LocalCartStore(items),
            inventory_sources=inventory_sources,
        )
        await machine.start(auth)
        return machine

    return _start


@pytest.fixture()
def registered_customer(services):
    services.identity.register("jane@example.com", "secret123", name="Jane Doe", phone="+13105551234")
    return {"email": "jane@example.com", "password": "secret123"}
