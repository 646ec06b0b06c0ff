"""Tests for the httpx adapters, driven through httpx.MockTransport."""

import json

import httpx
import pytest

from checkout.services import get_services, reset_services
from checkout.services.fake_adapter import FakeOrderService
from checkout.services.http_adapter import (
    HttpCartService,
    HttpIdentityService,
    HttpInventoryService,
    HttpOrderService,
    HttpPaymentProcessor,
    HttpShippingRateService,
    PrintfulCountryCatalog,
    StorefrontHttpClient,
    ZippopotamLookup,
)
from checkout.services.port import ServiceError


class Recorder:
    """Routes requests to canned responses and keeps what was sent."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "Not found"})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def _client(recorder):
    return StorefrontHttpClient(base_url="http://storefront.test", timeout=2, transport=httpx.MockTransport(recorder))


class TestStorefrontClient:
    async def test_bearer_token_is_sent(self):
        recorder = Recorder({("GET", "/api/cart"): (200, {"cart": {"items": []}})})
        await HttpCartService(_client(recorder)).get_cart("tok-1")
        assert recorder.requests[0].headers["Authorization"] == "Bearer tok-1"

    async def test_error_body_becomes_service_error(self):
        recorder = Recorder({("POST", "/api/auth/login"): (401, {"error": "Invalid email or password"})})
        with pytest.raises(ServiceError) as exc:
            await HttpIdentityService(_client(recorder)).login("jane@example.com", "wrong")
        assert exc.value.status_code == 401
        assert exc.value.message == "Invalid email or password"
        assert not exc.value.retryable

    async def test_transport_failure_is_retryable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = StorefrontHttpClient(base_url="http://storefront.test", transport=httpx.MockTransport(refuse))
        with pytest.raises(ServiceError) as exc:
            await HttpCartService(client).get_cart("tok-1")
        assert exc.value.status_code is None
        assert exc.value.retryable
        assert exc.value.message.startswith("Network error")

    def test_base_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("STOREFRONT_API_URL", "http://api.example.com/")
        assert StorefrontHttpClient().base_url == "http://api.example.com"


class TestIdentityAndCart:
    async def test_login(self):
        recorder = Recorder(
            {
                ("POST", "/api/auth/login"): (
                    200,
                    {
                        "tokens": {"accessToken": "jwt-abc"},
                        "user": {"id": 7, "email": "jane@example.com", "firstName": "Jane", "lastName": "Doe"},
                    },
                )
            }
        )
        auth = await HttpIdentityService(_client(recorder)).login("jane@example.com", "secret123")
        assert auth.token == "jwt-abc"
        assert auth.user.id == "7"
        assert auth.user.name == "Jane Doe"

    async def test_cart_items(self):
        recorder = Recorder(
            {
                ("GET", "/api/cart"): (
                    200,
                    {
                        "cart": {
                            "items": [
                                {
                                    "id": 3,
                                    "product_id": 1,
                                    "variant_id": 4012,
                                    "product_name": "Glitch Tee",
                                    "price": "24.00",
                                    "quantity": 2,
                                    "printful_availability_regions": ["US"],
                                }
                            ]
                        }
                    },
                )
            }
        )
        items = await HttpCartService(_client(recorder)).get_cart("tok-1")
        assert items[0].variant_id == "4012"
        assert items[0].line_total == 48.0
        assert items[0].shipping_regions == ("US",)


class TestLookups:
    async def test_countries(self):
        recorder = Recorder(
            {
                ("GET", "/countries"): (
                    200,
                    {
                        "result": [
                            {
                                "code": "US",
                                "name": "United States",
                                "region": "north_america",
                                "states": [{"code": "CA", "name": "California"}],
                            },
                            {"code": "DE", "name": "Germany", "region": "europe", "states": None},
                        ]
                    },
                )
            }
        )
        countries = await PrintfulCountryCatalog(_client(recorder)).list_countries()
        assert [country.code for country in countries] == ["US", "DE"]
        assert countries[0].states[0].name == "California"
        assert countries[1].states == ()
        assert recorder.requests[0].url.host == "api.printful.com"

    async def test_us_zip(self):
        recorder = Recorder(
            {
                ("GET", "/us/90210"): (
                    200,
                    {"places": [{"place name": "Beverly Hills", "state": "California", "state abbreviation": "CA"}]},
                )
            }
        )
        location = await ZippopotamLookup(_client(recorder)).lookup("90210-1234", "US")
        assert location.city == "Beverly Hills"
        assert location.state == "CA"

    async def test_canadian_postal_code_uses_forward_sortation_area(self):
        recorder = Recorder(
            {("GET", "/ca/M5V"): (200, {"places": [{"place name": "Toronto", "state": "Ontario"}]})}
        )
        location = await ZippopotamLookup(_client(recorder)).lookup("M5V 3L9", "CA")
        assert location.state == "Ontario"

    async def test_unknown_zip(self):
        location = await ZippopotamLookup(_client(Recorder({}))).lookup("00000", "US")
        assert location is None

    async def test_unsupported_country_is_not_requested(self):
        recorder = Recorder({})
        assert await ZippopotamLookup(_client(recorder)).lookup("10115", "DE") is None
        assert recorder.requests == []


class TestRatesAndInventory:
    async def test_rates(self, us_item):
        recorder = Recorder(
            {
                ("POST", "/api/checkout/shipping-estimates"): (
                    200,
                    {"rates": [{"id": "STANDARD", "name": "Flat Rate", "rate": "4.99", "currency": "USD"}]},
                )
            }
        )
        rates = await HttpShippingRateService(_client(recorder)).get_rates({"country": "US"}, [us_item])
        assert rates[0].price == 4.99
        assert recorder.body()["items"] == [{"variant_id": "4012", "quantity": 1}]

    async def test_availability(self):
        recorder = Recorder(
            {
                ("POST", "/api/unified-checkout/check-availability"): (
                    200,
                    {
                        "success": False,
                        "all_available": False,
                        "unavailable_count": 1,
                        "checks": [{"variant_id": 4012, "available": False, "reason": "Discontinued"}],
                    },
                )
            }
        )
        report = await HttpInventoryService(_client(recorder)).check_variants([{"variant_id": "4012", "quantity": 1}])
        assert not report.all_available
        assert report.checks[0].variant_id == "4012"
        assert report.checks[0].reason == "Discontinued"


class TestOrdersAndPayments:
    async def test_guest_checkout_phases(self):
        recorder = Recorder(
            {
                ("POST", "/api/unified-checkout/guest/create"): (
                    200,
                    {"session": {"session_token": "gcs_1"}, "summary": {"total": "26.59"}},
                ),
                ("POST", "/api/unified-checkout/process"): (
                    200,
                    {"order": {"orderNumber": "ORD-42", "total": 26.59, "status": "pending"}},
                ),
            }
        )
        orders = HttpOrderService(_client(recorder))
        ticket = await orders.create_guest_checkout({"email": "jane@example.com"})
        order = await orders.process_checkout(ticket.session_token, "stripe", {"email": "a@b.c", "password": "x"})

        assert ticket.total == 26.59
        assert order.order_number == "ORD-42"
        assert recorder.body()["sessionToken"] == "gcs_1"
        assert recorder.body()["loginCredentials"] == {"email": "a@b.c", "password": "x"}

    async def test_order_without_number_is_an_error(self):
        recorder = Recorder({("POST", "/api/unified-checkout/process"): (200, {"order": {}})})
        with pytest.raises(ServiceError):
            await HttpOrderService(_client(recorder)).create_order("tok-1", {})

    async def test_payment_intent(self):
        recorder = Recorder(
            {
                ("POST", "/api/unified-checkout/stripe/create-payment-intent"): (
                    200,
                    {"success": True, "clientSecret": "pi_1_secret", "paymentIntentId": "pi_1"},
                )
            }
        )
        intent = await HttpPaymentProcessor(_client(recorder)).create_payment_intent(26.5, "ORD-42", "jane@example.com")
        assert intent.client_secret == "pi_1_secret"
        assert recorder.body() == {"amount": "26.50", "orderNumber": "ORD-42", "customerEmail": "jane@example.com"}


class TestAdapterSelection:
    def test_fake_by_default(self, monkeypatch):
        monkeypatch.setenv("CHECKOUT_SERVICES_ADAPTER", "fake")
        reset_services()
        try:
            assert isinstance(get_services().orders, FakeOrderService)
        finally:
            reset_services()

    def test_http(self, monkeypatch):
        monkeypatch.setenv("CHECKOUT_SERVICES_ADAPTER", "http")
        reset_services()
        try:
            assert isinstance(get_services().orders, HttpOrderService)
        finally:
            reset_services()

    def test_unknown_adapter(self, monkeypatch):
        monkeypatch.setenv("CHECKOUT_SERVICES_ADAPTER", "carrier-pigeon")
        reset_services()
        with pytest.raises(ValueError):
            get_services()
