"""httpx adapters for the storefront REST API and the public lookups.

``StorefrontHttpClient`` owns the transport details (base URL, timeout,
bearer header, status classification). The per-port adapters translate
between wire payloads and the port dataclasses. A fresh ``AsyncClient`` is
opened per request so the adapters are safe to share across event loops.
"""

import os
import re

import httpx
import structlog

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

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "http://localhost:3003"
DEFAULT_TIMEOUT = 10.0
PRINTFUL_API_URL = "https://api.printful.com"
ZIPPOPOTAM_API_URL = "https://api.zippopotam.us"


def _money(value) -> float | None:
    """Parse ``12.5``, ``"12.50"`` or ``"$12.50"``."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^\d.\-]", "", str(value))
    return float(cleaned) if cleaned else None


class StorefrontHttpClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or os.environ.get("STOREFRONT_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.timeout = timeout if timeout is not None else float(
            os.environ.get("STOREFRONT_HTTP_TIMEOUT", DEFAULT_TIMEOUT)
        )
        self.transport = transport

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: dict | None = None,
        base_url: str | None = None,
    ) -> dict:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(
                base_url=base_url or self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = self._error_message(exc.response)
            logger.warning("storefront_request_rejected", method=method, path=path, status=status, error=message)
            raise ServiceError(message, status) from exc
        except httpx.RequestError as exc:
            logger.warning("storefront_request_failed", method=method, path=path, error=str(exc))
            raise ServiceError(f"Network error: {exc}") from exc

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ServiceError("Unreadable response from server") from exc
        return body if isinstance(body, dict) else {"result": body}

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"Request failed with status {response.status_code}"
        if isinstance(body, dict):
            for key in ("error", "message", "detail"):
                if isinstance(body.get(key), str):
                    return body[key]
        return f"Request failed with status {response.status_code}"


def _profile(data: dict) -> UserProfile:
    name = data.get("name") or " ".join(filter(None, (data.get("firstName"), data.get("lastName"))))
    return UserProfile(
        id=str(data.get("id", "")),
        email=data.get("email", ""),
        name=name,
        phone=data.get("phone") or "",
    )


def _address(data: dict) -> SavedAddress:
    return SavedAddress(
        id=str(data["id"]) if data.get("id") is not None else None,
        name=data.get("name") or "",
        address1=data.get("address1") or "",
        address2=data.get("address2") or "",
        city=data.get("city") or "",
        state=data.get("state") or "",
        zip=data.get("zip") or "",
        country=data.get("country") or "",
        phone=data.get("phone") or "",
        is_default=bool(data.get("is_default", False)),
        address_type=data.get("address_type") or "shipping",
    )


def _address_payload(address: SavedAddress) -> dict:
    return {
        "name": address.name,
        "address1": address.address1,
        "address2": address.address2,
        "city": address.city,
        "state": address.state,
        "zip": address.zip,
        "country": address.country,
        "phone": address.phone,
        "address_type": address.address_type,
        "is_default": address.is_default,
    }


def _order(data: dict) -> PlacedOrder:
    order = data.get("order") or data
    number = order.get("orderNumber") or order.get("order_number")
    if not number:
        raise ServiceError("Order response did not include an order number")
    return PlacedOrder(
        order_number=number,
        total=_money(order.get("total") or order.get("totalAmount")),
        status=order.get("status", "pending"),
        payment_status=order.get("paymentStatus") or order.get("payment_status") or "pending",
        raw=order,
    )


class HttpIdentityService(IdentityService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def login(self, email: str, password: str) -> AuthSession:
        body = await self.client.request("POST", "/api/auth/login", json={"email": email, "password": password})
        token = (body.get("tokens") or {}).get("accessToken") or body.get("token")
        if not token:
            raise ServiceError(body.get("error") or "Login failed", 401)
        return AuthSession(token=token, user=_profile(body.get("user") or {}))


class HttpCartService(CartService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def get_cart(self, token: str) -> list[CartLineItem]:
        body = await self.client.request("GET", "/api/cart", token=token)
        cart = body.get("cart") or body
        return [CartLineItem.from_dict(item) for item in cart.get("items", [])]

    async def add_item(self, token: str, variant_id: str, quantity: int) -> None:
        await self.client.request(
            "POST", "/api/cart/add", token=token, json={"variantId": variant_id, "quantity": quantity}
        )

    async def update_quantity(self, token: str, item_id: str, quantity: int) -> None:
        await self.client.request("PUT", f"/api/cart/items/{item_id}", token=token, json={"quantity": quantity})

    async def remove_item(self, token: str, item_id: str) -> None:
        await self.client.request("DELETE", f"/api/cart/items/{item_id}", token=token)

    async def clear_cart(self, token: str) -> None:
        await self.client.request("DELETE", "/api/cart/clear", token=token)


class HttpAddressService(AddressService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def list(self, token: str) -> list[SavedAddress]:
        body = await self.client.request("GET", "/api/addresses", token=token)
        return [_address(entry) for entry in body.get("addresses", [])]

    async def create(self, token: str, address: SavedAddress) -> SavedAddress:
        body = await self.client.request("POST", "/api/addresses", token=token, json=_address_payload(address))
        return _address(body.get("address") or body)

    async def update(self, token: str, address_id: str, address: SavedAddress) -> SavedAddress:
        body = await self.client.request(
            "PUT", f"/api/addresses/{address_id}", token=token, json=_address_payload(address)
        )
        return _address(body.get("address") or body)

    async def delete(self, token: str, address_id: str) -> None:
        await self.client.request("DELETE", f"/api/addresses/{address_id}", token=token)

    async def set_default(self, token: str, address_id: str, address_type: str) -> None:
        await self.client.request(
            "PUT", f"/api/addresses/{address_id}/default", token=token, json={"addressType": address_type}
        )


class PrintfulCountryCatalog(CountryCatalog):
    def __init__(self, client: StorefrontHttpClient, base_url: str = PRINTFUL_API_URL) -> None:
        self.client = client
        self.base_url = base_url

    async def list_countries(self) -> list[Country]:
        body = await self.client.request("GET", "/countries", base_url=self.base_url)
        return [
            Country(
                code=entry["code"],
                name=entry.get("name", entry["code"]),
                region=entry.get("region") or "",
                states=tuple(
                    Region(state["code"], state.get("name", state["code"])) for state in entry.get("states") or []
                ),
            )
            for entry in body.get("result", [])
        ]


class ZippopotamLookup(PostalLookup):
    """zippopotam.us lookup. Canada resolves on the forward sortation area."""

    def __init__(self, client: StorefrontHttpClient, base_url: str = ZIPPOPOTAM_API_URL) -> None:
        self.client = client
        self.base_url = base_url

    async def lookup(self, zip_code: str, country: str) -> PostalLocation | None:
        country = country.upper()
        if country == "US":
            key = zip_code[:5]
        elif country == "CA":
            key = zip_code.replace(" ", "")[:3]
        else:
            return None

        try:
            body = await self.client.request("GET", f"/{country.lower()}/{key}", base_url=self.base_url)
        except ServiceError as exc:
            if exc.status_code == 404:
                return None
            raise

        places = body.get("places") or []
        if not places:
            return None
        place = places[0]
        return PostalLocation(
            city=place.get("place name", ""),
            state=place.get("state abbreviation") or place.get("state", ""),
        )


class HttpShippingRateService(ShippingRateService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def get_rates(self, address: dict, items: list[CartLineItem]) -> list[ShippingRateOption]:
        body = await self.client.request(
            "POST",
            "/api/checkout/shipping-estimates",
            json={
                "address": address,
                "items": [{"variant_id": item.variant_id, "quantity": item.quantity} for item in items],
            },
        )
        options = body.get("rates") or body.get("shippingOptions") or body.get("result") or []
        return [
            ShippingRateOption(
                id=str(option["id"]),
                name=option.get("name", str(option["id"])),
                price=_money(option.get("rate", option.get("price"))) or 0.0,
                currency=option.get("currency", "USD"),
                min_delivery_days=option.get("minDeliveryDays"),
                max_delivery_days=option.get("maxDeliveryDays"),
            )
            for option in options
        ]


class HttpInventoryService(InventoryService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def check_variants(self, variants: list[dict]) -> InventoryReport:
        body = await self.client.request(
            "POST", "/api/unified-checkout/check-availability", json={"variants": variants}
        )
        checks = tuple(
            ItemAvailability(
                variant_id=str(check.get("variant_id")),
                available=bool(check.get("available")),
                name=check.get("name") or "",
                reason=check.get("reason") or "",
            )
            for check in body.get("checks") or []
        )
        return InventoryReport(
            all_available=bool(body.get("all_available", body.get("success", False))),
            checks=checks,
            unavailable_count=int(body.get("unavailable_count") or 0),
        )


class HttpOrderService(OrderService):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def create_order(self, token: str, payload: dict) -> PlacedOrder:
        body = await self.client.request("POST", "/api/unified-checkout/process", token=token, json=payload)
        return _order(body)

    async def create_guest_checkout(self, payload: dict) -> GuestCheckoutTicket:
        body = await self.client.request("POST", "/api/unified-checkout/guest/create", json=payload)
        session = body.get("session") or {}
        token = session.get("session_token")
        if not token:
            raise ServiceError("Guest checkout response did not include a session token")
        return GuestCheckoutTicket(session_token=token, total=_money((body.get("summary") or {}).get("total")))

    async def process_checkout(
        self,
        session_token: str,
        payment_method: str,
        login_credentials: dict | None = None,
    ) -> PlacedOrder:
        payload = {"sessionToken": session_token, "paymentMethod": payment_method, "customerNotes": ""}
        if login_credentials:
            payload["loginCredentials"] = login_credentials
        body = await self.client.request("POST", "/api/unified-checkout/process", json=payload)
        return _order(body)


class HttpPaymentProcessor(PaymentProcessor):
    def __init__(self, client: StorefrontHttpClient) -> None:
        self.client = client

    async def create_payment_intent(self, amount: float, order_number: str, email: str) -> PaymentIntent:
        body = await self.client.request(
            "POST",
            "/api/unified-checkout/stripe/create-payment-intent",
            json={"amount": f"{amount:.2f}", "orderNumber": order_number, "customerEmail": email},
        )
        return PaymentIntent(
            success=bool(body.get("success")),
            client_secret=body.get("clientSecret"),
            payment_intent_id=body.get("paymentIntentId"),
            error=body.get("error"),
        )

    async def confirm_payment(self, payment_intent_id: str, order_number: str) -> PaymentConfirmation:
        body = await self.client.request(
            "POST",
            "/api/unified-checkout/stripe/confirm-payment",
            json={"paymentIntentId": payment_intent_id, "orderNumber": order_number},
        )
        return PaymentConfirmation(
            success=bool(body.get("success")),
            order_number=body.get("orderNumber") or order_number,
            payment_status=body.get("paymentStatus"),
            error=body.get("error"),
        )


def build_http_services(client: StorefrontHttpClient | None = None) -> CheckoutServices:
    client = client or StorefrontHttpClient()
    return CheckoutServices(
        identity=HttpIdentityService(client),
        carts=HttpCartService(client),
        addresses=HttpAddressService(client),
        countries=PrintfulCountryCatalog(client),
        postal=ZippopotamLookup(client),
        shipping=HttpShippingRateService(client),
        inventory=HttpInventoryService(client),
        orders=HttpOrderService(client),
        payments=HttpPaymentProcessor(client),
    )
