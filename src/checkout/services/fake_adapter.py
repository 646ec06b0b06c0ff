"""Configurable in-memory collaborators for development and testing.

Each fake records its calls and can be switched to fail at runtime with
``configure(should_succeed=False, failure_reason=..., status_code=...)``.
A failure is raised as ``ServiceError``, exactly like the HTTP adapter does
for a refused request. Optional ``delays`` let tests interleave concurrent
lookups to exercise stale-response suppression.
"""

import asyncio
from dataclasses import replace
from uuid import uuid4

from checkout.address.normalizer import known_regions
from checkout.cart.items import CartLineItem
from checkout.services.port import (
    AddressService,
    AuthSession,
    CartService,
    CheckoutServices,
    Country,
    CountryCatalog,
    GuestCheckoutTicket,
    IdentityService,
    InventoryReport,
    InventoryService,
    ItemAvailability,
    OrderService,
    PaymentConfirmation,
    PaymentIntent,
    PaymentProcessor,
    PlacedOrder,
    PostalLocation,
    PostalLookup,
    Region,
    SavedAddress,
    ServiceError,
    ShippingRateOption,
    ShippingRateService,
    UserProfile,
)

DEFAULT_COUNTRIES = [
    Country("US", "United States", "north_america", tuple(Region(c, n) for c, n in known_regions("US"))),
    Country("CA", "Canada", "north_america", tuple(Region(c, n) for c, n in known_regions("CA"))),
    Country("GB", "United Kingdom", "europe"),
    Country("DE", "Germany", "europe"),
    Country("FR", "France", "europe"),
    Country("AU", "Australia", "oceania"),
]


class _FakeService:
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Service unavailable"
        self.status_code: int | None = None
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Service unavailable",
        status_code: int | None = None,
    ) -> None:
        """Configure fake behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.status_code = status_code

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if not self.should_succeed:
            raise ServiceError(self.failure_reason, self.status_code)

    def called(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]


class FakeIdentityService(_FakeService, IdentityService):
    def __init__(self) -> None:
        super().__init__()
        self.users: dict[str, tuple[str, UserProfile]] = {}

    def register(self, email: str, password: str, name: str = "", phone: str = "") -> UserProfile:
        profile = UserProfile(id=str(uuid4()), email=email, name=name, phone=phone)
        self.users[email.lower()] = (password, profile)
        return profile

    async def login(self, email: str, password: str) -> AuthSession:
        self._record("login", email=email)
        entry = self.users.get(email.lower())
        if entry is None or entry[0] != password:
            raise ServiceError("Invalid email or password", 401)
        return AuthSession(token=f"token-{entry[1].id}", user=entry[1])


class FakeCartService(_FakeService, CartService):
    def __init__(self) -> None:
        super().__init__()
        self.carts: dict[str, list[CartLineItem]] = {}

    def seed(self, token: str, items: list[CartLineItem]) -> None:
        self.carts[token] = list(items)

    async def get_cart(self, token: str) -> list[CartLineItem]:
        self._record("get_cart", token=token)
        return list(self.carts.get(token, []))

    async def add_item(self, token: str, variant_id: str, quantity: int) -> None:
        self._record("add_item", token=token, variant_id=variant_id, quantity=quantity)
        cart = self.carts.setdefault(token, [])
        for index, item in enumerate(cart):
            if item.variant_id == variant_id:
                cart[index] = replace(item, quantity=item.quantity + quantity)
                return
        raise ServiceError(f"Unknown variant {variant_id}", 404)

    async def update_quantity(self, token: str, item_id: str, quantity: int) -> None:
        self._record("update_quantity", token=token, item_id=item_id, quantity=quantity)
        cart = self.carts.get(token, [])
        self.carts[token] = [replace(item, quantity=quantity) if item.id == item_id else item for item in cart]

    async def remove_item(self, token: str, item_id: str) -> None:
        self._record("remove_item", token=token, item_id=item_id)
        self.carts[token] = [item for item in self.carts.get(token, []) if item.id != item_id]

    async def clear_cart(self, token: str) -> None:
        self._record("clear_cart", token=token)
        self.carts[token] = []


class FakeAddressService(_FakeService, AddressService):
    def __init__(self) -> None:
        super().__init__()
        self.addresses: dict[str, list[SavedAddress]] = {}

    async def list(self, token: str) -> list[SavedAddress]:
        self._record("list", token=token)
        return list(self.addresses.get(token, []))

    async def create(self, token: str, address: SavedAddress) -> SavedAddress:
        self._record("create", token=token, address=address)
        saved = replace(address, id=str(uuid4()))
        self.addresses.setdefault(token, []).append(saved)
        return saved

    async def update(self, token: str, address_id: str, address: SavedAddress) -> SavedAddress:
        self._record("update", token=token, address_id=address_id)
        updated = replace(address, id=address_id)
        self.addresses[token] = [
            updated if existing.id == address_id else existing for existing in self.addresses.get(token, [])
        ]
        return updated

    async def delete(self, token: str, address_id: str) -> None:
        self._record("delete", token=token, address_id=address_id)
        self.addresses[token] = [a for a in self.addresses.get(token, []) if a.id != address_id]

    async def set_default(self, token: str, address_id: str, address_type: str) -> None:
        self._record("set_default", token=token, address_id=address_id, address_type=address_type)
        self.addresses[token] = [
            replace(a, is_default=a.id == address_id) for a in self.addresses.get(token, [])
        ]


class FakeCountryCatalog(_FakeService, CountryCatalog):
    def __init__(self, countries: list[Country] | None = None) -> None:
        super().__init__()
        self.countries = list(countries or DEFAULT_COUNTRIES)

    async def list_countries(self) -> list[Country]:
        self._record("list_countries")
        return list(self.countries)


class FakePostalLookup(_FakeService, PostalLookup):
    def __init__(self) -> None:
        super().__init__()
        self.locations: dict[tuple[str, str], PostalLocation] = {
            ("90210", "US"): PostalLocation(city="Beverly Hills", state="California"),
            ("M5V", "CA"): PostalLocation(city="Toronto", state="Ontario"),
        }
        self.delays: dict[str, float] = {}

    async def lookup(self, zip_code: str, country: str) -> PostalLocation | None:
        await asyncio.sleep(self.delays.get(zip_code, 0))
        self._record("lookup", zip_code=zip_code, country=country)
        if country == "CA":
            key = zip_code.replace(" ", "")[:3].upper()
        else:
            key = zip_code.strip()[:5]
        return self.locations.get((key, country))


class FakeShippingRateService(_FakeService, ShippingRateService):
    def __init__(self) -> None:
        super().__init__()
        self.rates_by_country: dict[str, list[ShippingRateOption]] = {}
        self.default_rates = [
            ShippingRateOption("STANDARD", "Flat Rate (Estimated delivery: 4-8 business days)", 4.99, "USD", 4, 8),
            ShippingRateOption("EXPRESS", "Express (Estimated delivery: 2-3 business days)", 14.99, "USD", 2, 3),
        ]
        self.delays: dict[str, float] = {}

    async def get_rates(self, address: dict, items: list[CartLineItem]) -> list[ShippingRateOption]:
        country = address.get("country", "")
        await asyncio.sleep(self.delays.get(country, 0))
        self._record("get_rates", country=country, item_count=len(items))
        return list(self.rates_by_country.get(country, self.default_rates))


class FakeInventoryService(_FakeService, InventoryService):
    def __init__(self) -> None:
        super().__init__()
        self.unavailable: dict[str, str] = {}

    def mark_unavailable(self, variant_id: str, reason: str = "Out of stock") -> None:
        self.unavailable[variant_id] = reason

    async def check_variants(self, variants: list[dict]) -> InventoryReport:
        self._record("check_variants", variants=variants)
        checks = tuple(
            ItemAvailability(
                variant_id=entry["variant_id"],
                available=entry["variant_id"] not in self.unavailable,
                reason=self.unavailable.get(entry["variant_id"], ""),
            )
            for entry in variants
        )
        unavailable = sum(1 for check in checks if not check.available)
        return InventoryReport(all_available=unavailable == 0, checks=checks, unavailable_count=unavailable)


class FakeOrderService(_FakeService, OrderService):
    """Order service fake.

    ``fail_completion`` makes only the second guest phase fail, leaving the
    checkout session open so the caller can retry with the same token.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_completion: ServiceError | None = None
        self.sessions: dict[str, dict] = {}
        self.orders: dict[str, dict] = {}

    def _new_order(self, payload: dict) -> PlacedOrder:
        order_number = f"ORD-{uuid4().hex[:8].upper()}"
        self.orders[order_number] = payload
        return PlacedOrder(order_number=order_number, total=payload.get("total"))

    async def create_order(self, token: str, payload: dict) -> PlacedOrder:
        self._record("create_order", token=token, payload=payload)
        return self._new_order(payload)

    async def create_guest_checkout(self, payload: dict) -> GuestCheckoutTicket:
        self._record("create_guest_checkout", payload=payload)
        session_token = f"gcs_{uuid4().hex[:16]}"
        self.sessions[session_token] = payload
        return GuestCheckoutTicket(session_token=session_token, total=payload.get("total"))

    async def process_checkout(
        self,
        session_token: str,
        payment_method: str,
        login_credentials: dict | None = None,
    ) -> PlacedOrder:
        self._record(
            "process_checkout",
            session_token=session_token,
            payment_method=payment_method,
            login_credentials=login_credentials,
        )
        if self.fail_completion is not None:
            raise self.fail_completion
        payload = self.sessions.pop(session_token, None)
        if payload is None:
            raise ServiceError("Checkout session not found or already completed", 404)
        return self._new_order(payload)


class FakePaymentProcessor(_FakeService, PaymentProcessor):
    """Payment fake.

    ``configure(should_succeed=False)`` makes the processor answer with
    ``success=False`` rather than raising, mirroring a declined intent.
    """

    async def create_payment_intent(self, amount: float, order_number: str, email: str) -> PaymentIntent:
        self.calls.append(
            {"method": "create_payment_intent", "amount": amount, "order_number": order_number, "email": email}
        )
        if self.status_code is not None:
            raise ServiceError(self.failure_reason, self.status_code)
        if not self.should_succeed:
            return PaymentIntent(success=False, error=self.failure_reason)
        intent_id = f"pi_fake_{uuid4().hex[:12]}"
        return PaymentIntent(success=True, client_secret=f"{intent_id}_secret", payment_intent_id=intent_id)

    async def confirm_payment(self, payment_intent_id: str, order_number: str) -> PaymentConfirmation:
        self.calls.append(
            {"method": "confirm_payment", "payment_intent_id": payment_intent_id, "order_number": order_number}
        )
        if not self.should_succeed:
            return PaymentConfirmation(success=False, order_number=order_number, error=self.failure_reason)
        return PaymentConfirmation(success=True, order_number=order_number, payment_status="paid")


def build_fake_services() -> CheckoutServices:
    return CheckoutServices(
        identity=FakeIdentityService(),
        carts=FakeCartService(),
        addresses=FakeAddressService(),
        countries=FakeCountryCatalog(),
        postal=FakePostalLookup(),
        shipping=FakeShippingRateService(),
        inventory=FakeInventoryService(),
        orders=FakeOrderService(),
        payments=FakePaymentProcessor(),
    )
