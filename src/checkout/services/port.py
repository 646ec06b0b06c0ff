"""Ports for the external collaborators checkout talks to.

Every adapter (in-memory fakes for development and tests, the storefront
HTTP client for production) implements these contracts. Adapters raise
``ServiceError`` for any failure; the checkout components normalize it at
their own boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from checkout.cart.items import CartLineItem


class ServiceError(Exception):
    """A collaborator call failed.

    ``status_code`` is ``None`` for transport failures (timeouts, refused
    connections, unparseable bodies).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500


# ---------------------------------------------------------------------------
# Data exchanged with collaborators
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Region:
    code: str
    name: str


@dataclass(frozen=True)
class Country:
    code: str
    name: str
    region: str = ""
    states: tuple[Region, ...] = ()


@dataclass(frozen=True)
class PostalLocation:
    city: str
    state: str


@dataclass(frozen=True)
class SavedAddress:
    id: str | None
    name: str
    address1: str
    city: str
    zip: str
    country: str
    address2: str = ""
    state: str = ""
    phone: str = ""
    is_default: bool = False
    address_type: str = "shipping"

    @property
    def usable_for_shipping(self) -> bool:
        return self.address_type in ("shipping", "both")


@dataclass(frozen=True)
class ShippingRateOption:
    id: str
    name: str
    price: float
    currency: str = "USD"
    min_delivery_days: int | None = None
    max_delivery_days: int | None = None


@dataclass(frozen=True)
class ItemAvailability:
    variant_id: str
    available: bool
    name: str = ""
    reason: str = ""


@dataclass(frozen=True)
class InventoryReport:
    all_available: bool
    checks: tuple[ItemAvailability, ...] = ()
    unavailable_count: int = 0


@dataclass(frozen=True)
class UserProfile:
    id: str
    email: str
    name: str = ""
    phone: str = ""


@dataclass(frozen=True)
class AuthSession:
    """Bearer credential plus the profile it belongs to."""

    token: str
    user: UserProfile


@dataclass(frozen=True)
class GuestCheckoutTicket:
    session_token: str
    total: float | None = None


@dataclass(frozen=True)
class PlacedOrder:
    order_number: str
    total: float | None = None
    status: str = "pending"
    payment_status: str = "pending"
    raw: dict = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class PaymentIntent:
    success: bool
    client_secret: str | None = None
    payment_intent_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PaymentConfirmation:
    success: bool
    order_number: str | None = None
    payment_status: str | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------
class IdentityService(ABC):
    @abstractmethod
    async def login(self, email: str, password: str) -> AuthSession:
        """Exchange credentials for a bearer token and profile."""
        ...


class CartService(ABC):
    """Server-persisted cart of an authenticated user."""

    @abstractmethod
    async def get_cart(self, token: str) -> list[CartLineItem]: ...

    @abstractmethod
    async def add_item(self, token: str, variant_id: str, quantity: int) -> None: ...

    @abstractmethod
    async def update_quantity(self, token: str, item_id: str, quantity: int) -> None: ...

    @abstractmethod
    async def remove_item(self, token: str, item_id: str) -> None: ...

    @abstractmethod
    async def clear_cart(self, token: str) -> None: ...


class AddressService(ABC):
    @abstractmethod
    async def list(self, token: str) -> list[SavedAddress]: ...

    @abstractmethod
    async def create(self, token: str, address: SavedAddress) -> SavedAddress: ...

    @abstractmethod
    async def update(self, token: str, address_id: str, address: SavedAddress) -> SavedAddress: ...

    @abstractmethod
    async def delete(self, token: str, address_id: str) -> None: ...

    @abstractmethod
    async def set_default(self, token: str, address_id: str, address_type: str) -> None: ...


class CountryCatalog(ABC):
    @abstractmethod
    async def list_countries(self) -> list[Country]:
        """Countries with region grouping and their states/provinces."""
        ...


class PostalLookup(ABC):
    @abstractmethod
    async def lookup(self, zip_code: str, country: str) -> PostalLocation | None:
        """Best-effort city/state for a postal code; ``None`` when unknown."""
        ...


class ShippingRateService(ABC):
    @abstractmethod
    async def get_rates(self, address: dict, items: list[CartLineItem]) -> list[ShippingRateOption]: ...


class InventoryService(ABC):
    @abstractmethod
    async def check_variants(self, variants: list[dict]) -> InventoryReport:
        """``variants`` is a list of ``{"variant_id", "quantity"}`` dicts."""
        ...


class OrderService(ABC):
    @abstractmethod
    async def create_order(self, token: str, payload: dict) -> PlacedOrder:
        """Direct order creation for an authenticated customer."""
        ...

    @abstractmethod
    async def create_guest_checkout(self, payload: dict) -> GuestCheckoutTicket:
        """Phase one of guest checkout: open a checkout session."""
        ...

    @abstractmethod
    async def process_checkout(
        self,
        session_token: str,
        payment_method: str,
        login_credentials: dict | None = None,
    ) -> PlacedOrder:
        """Phase two of guest checkout: turn the session into an order."""
        ...


class PaymentProcessor(ABC):
    @abstractmethod
    async def create_payment_intent(self, amount: float, order_number: str, email: str) -> PaymentIntent: ...

    @abstractmethod
    async def confirm_payment(self, payment_intent_id: str, order_number: str) -> PaymentConfirmation: ...


@dataclass
class CheckoutServices:
    """The full set of collaborators one checkout session needs."""

    identity: IdentityService
    carts: CartService
    addresses: AddressService
    countries: CountryCatalog
    postal: PostalLookup
    shipping: ShippingRateService
    inventory: InventoryService
    orders: OrderService
    payments: PaymentProcessor
