"""Carrier rate quotes for the current address and cart.

Every fetch takes a new generation number; a response is applied only if
no newer fetch (or invalidation) happened while it was in flight.
"""

import structlog
from protean.exceptions import ValidationError

from checkout.address.normalizer import normalize_region
from checkout.address.validation import can_fetch_shipping_rates
from checkout.cart.items import CartLineItem
from checkout.errors import LookupDegraded
from checkout.services.port import ServiceError, ShippingRateOption, ShippingRateService

logger = structlog.get_logger(__name__)

RATES_UNAVAILABLE_MESSAGE = "Unable to fetch shipping rates. Please check your address and try again."


class ShippingRateFetcher:
    def __init__(self, service: ShippingRateService) -> None:
        self.service = service
        self.rates: list[ShippingRateOption] = []
        self.selected: ShippingRateOption | None = None
        self.last_error: LookupDegraded | None = None
        self._generation = 0
        self._in_flight = 0

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def generation(self) -> int:
        return self._generation

    @staticmethod
    def ready(info, incompatible: list) -> bool:
        """Rates may be quoted once the cart ships to the address and the address is complete."""
        return not incompatible and can_fetch_shipping_rates(info)

    @staticmethod
    def _address(info) -> dict:
        values = info.as_dict()
        return {
            "name": values["name"],
            "address1": values["address1"],
            "address2": values["address2"],
            "city": values["city"],
            "state": normalize_region(values["state"]),
            "zip": values["zip"],
            "country": values["country"],
            "phone": values["phone"],
        }

    async def fetch(self, info, items: list[CartLineItem]) -> list[ShippingRateOption] | None:
        """Quote rates for ``info``'s address.

        Returns the applied options, or ``None`` when a newer fetch superseded
        this one. Failures clear the options and record ``last_error``.
        """
        self._generation += 1
        generation = self._generation
        address = self._address(info)

        self._in_flight += 1
        try:
            rates = await self.service.get_rates(address, items)
            error = None
        except ServiceError as exc:
            rates, error = [], exc
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.debug("stale_rates_discarded", generation=generation, current=self._generation)
            return None

        if error is not None:
            logger.warning("shipping_rates_unavailable", country=address["country"], error=error.message)
            self.rates = []
            self.selected = None
            self.last_error = LookupDegraded(RATES_UNAVAILABLE_MESSAGE, source="shipping_rates")
            return []

        previous = self.selected
        self.rates = list(rates)
        self.last_error = None
        self.selected = None
        if previous is not None:
            self.selected = next((rate for rate in self.rates if rate.name == previous.name), None)

        logger.info(
            "shipping_rates_fetched",
            country=address["country"],
            count=len(self.rates),
            reselected=self.selected.id if self.selected else None,
        )
        return self.rates

    def invalidate(self) -> None:
        """Drop current options and ignore any fetch still in flight."""
        self._generation += 1
        self.rates = []
        self.selected = None

    def select(self, rate_id: str) -> ShippingRateOption:
        for rate in self.rates:
            if rate.id == rate_id:
                self.selected = rate
                return rate
        raise ValidationError({"shipping_rate": [f"Unknown shipping option '{rate_id}'"]})
