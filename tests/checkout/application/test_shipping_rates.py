"""Tests for carrier rate quoting and stale-response suppression."""

import asyncio

import pytest
from protean.exceptions import ValidationError

from checkout.services.port import ShippingRateOption
from checkout.session.session import CustomerInfo
from checkout.shipping.rates import RATES_UNAVAILABLE_MESSAGE, ShippingRateFetcher


@pytest.fixture()
def fetcher(services):
    return ShippingRateFetcher(services.shipping)


@pytest.fixture()
def us_address(happy_customer):
    return CustomerInfo(**happy_customer)


class TestReady:
    def test_complete_address_without_restrictions(self, us_address):
        assert ShippingRateFetcher.ready(us_address, [])

    def test_restrictions_block_quotes(self, us_address):
        assert not ShippingRateFetcher.ready(us_address, ["blocked"])

    def test_incomplete_address(self):
        assert not ShippingRateFetcher.ready(CustomerInfo(country="US", zip="90210"), [])


class TestFetch:
    async def test_fetches_rates(self, fetcher, us_address, us_item, services):
        rates = await fetcher.fetch(us_address, [us_item])
        assert [rate.id for rate in rates] == ["STANDARD", "EXPRESS"]
        assert fetcher.selected is None
        assert fetcher.last_error is None
        assert services.shipping.called("get_rates")[0]["country"] == "US"

    async def test_state_is_normalized_before_quoting(self, fetcher, happy_customer, us_item, services):
        seen = {}

        async def capture(address, items):
            seen.update(address)
            return []

        services.shipping.get_rates = capture
        await fetcher.fetch(CustomerInfo(**{**happy_customer, "state": "California"}), [us_item])
        assert seen["state"] == "CA"

    async def test_failure_clears_rates(self, fetcher, us_address, us_item, services):
        await fetcher.fetch(us_address, [us_item])
        fetcher.select("STANDARD")

        services.shipping.configure(should_succeed=False)
        assert await fetcher.fetch(us_address, [us_item]) == []
        assert fetcher.rates == []
        assert fetcher.selected is None
        assert fetcher.last_error.message == RATES_UNAVAILABLE_MESSAGE

    async def test_selection_survives_a_refetch_by_name(self, fetcher, us_address, us_item, services):
        await fetcher.fetch(us_address, [us_item])
        fetcher.select("EXPRESS")

        services.shipping.default_rates = [
            ShippingRateOption("STD-2", "Flat Rate (Estimated delivery: 4-8 business days)", 5.49),
            ShippingRateOption("EXP-2", "Express (Estimated delivery: 2-3 business days)", 15.49),
        ]
        await fetcher.fetch(us_address, [us_item])
        assert fetcher.selected.id == "EXP-2"

    async def test_selection_dropped_when_option_disappears(self, fetcher, us_address, us_item, services):
        await fetcher.fetch(us_address, [us_item])
        fetcher.select("EXPRESS")
        services.shipping.default_rates = services.shipping.default_rates[:1]
        await fetcher.fetch(us_address, [us_item])
        assert fetcher.selected is None

    async def test_stale_response_is_ignored(self, fetcher, happy_customer, us_item, services):
        services.shipping.delays["US"] = 0.05
        services.shipping.rates_by_country["CA"] = [ShippingRateOption("CA-STD", "Canada Post", 9.99)]
        to_us = CustomerInfo(**happy_customer)
        to_canada = CustomerInfo(**{**happy_customer, "country": "CA", "state": "ON", "zip": "M5V 3L9"})

        first = asyncio.create_task(fetcher.fetch(to_us, [us_item]))
        await asyncio.sleep(0)
        assert fetcher.loading
        second = await fetcher.fetch(to_canada, [us_item])

        assert await first is None
        assert [rate.id for rate in second] == ["CA-STD"]
        assert [rate.id for rate in fetcher.rates] == ["CA-STD"]
        assert not fetcher.loading

    async def test_invalidate_discards_in_flight_fetch(self, fetcher, us_address, us_item, services):
        services.shipping.delays["US"] = 0.05
        pending = asyncio.create_task(fetcher.fetch(us_address, [us_item]))
        await asyncio.sleep(0)
        fetcher.invalidate()
        assert await pending is None
        assert fetcher.rates == []


class TestSelect:
    async def test_unknown_rate(self, fetcher, us_address, us_item):
        await fetcher.fetch(us_address, [us_item])
        with pytest.raises(ValidationError) as exc:
            fetcher.select("OVERNIGHT")
        assert "shipping_rate" in exc.value.messages

    async def test_select_known_rate(self, fetcher, us_address, us_item):
        await fetcher.fetch(us_address, [us_item])
        assert fetcher.select("STANDARD").price == 4.99
