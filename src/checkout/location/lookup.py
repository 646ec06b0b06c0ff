"""Country/state catalog and postal-code autofill.

Lookups never write to the checkout form themselves. They return
``AddressUpdate`` values that the orchestrator applies with
``apply_updates``. Every zip edit supersedes the lookups still in flight;
a superseded lookup returns ``None`` and must not be applied.
"""

from dataclasses import dataclass

import structlog

from checkout.address.normalizer import known_regions, normalize_region, state_required
from checkout.errors import LookupDegraded
from checkout.services.port import Country, CountryCatalog, PostalLookup, Region, ServiceError

logger = structlog.get_logger(__name__)

FALLBACK_COUNTRIES = [
    Country("US", "United States", "north_america", tuple(Region(code, name) for code, name in known_regions("US"))),
    Country("CA", "Canada", "north_america", tuple(Region(code, name) for code, name in known_regions("CA"))),
]

_AUTOFILL_MIN_LENGTH = {"US": 5, "CA": 6}


@dataclass(frozen=True)
class AddressUpdate:
    field: str
    value: str


def apply_updates(info, updates: list[AddressUpdate]):
    """Return ``info`` (a ``CustomerInfo``) with ``updates`` applied in order."""
    if not updates:
        return info
    return info.merged(**{update.field: update.value for update in updates})


class LocationLookup:
    def __init__(self, catalog: CountryCatalog, postal: PostalLookup) -> None:
        self.catalog = catalog
        self.postal = postal
        self.countries: list[Country] = []
        self.available_states: list[Region] = []
        self.last_error: LookupDegraded | None = None
        self.last_autofill = None
        self._generation = 0
        self._in_flight = 0

    @property
    def is_loading_location(self) -> bool:
        return self._in_flight > 0

    async def load_countries(self) -> list[Country]:
        try:
            countries = await self.catalog.list_countries()
        except ServiceError as exc:
            logger.warning("country_catalog_unavailable", error=exc.message)
            self.last_error = LookupDegraded("Could not load the full country list", source="countries")
            countries = []

        self.countries = countries or list(FALLBACK_COUNTRIES)
        return self.countries

    def find_country(self, code: str) -> Country | None:
        return next((country for country in self.countries if country.code == code), None)

    def update_available_states(self, country: str, current_region: str) -> list[AddressUpdate]:
        """Refresh ``available_states`` for ``country``.

        Returns a state-clearing update only when ``current_region`` is not a
        state of the selected country. Unknown countries, and countries that
        require a state without publishing a list, leave the region as is.
        """
        selected = self.find_country(country)
        if selected is None:
            return []

        self.available_states = list(selected.states)
        if not self.available_states and state_required(country):
            return []
        if current_region and not self._is_available_state(current_region):
            return [AddressUpdate("state", "")]
        return []

    def _is_available_state(self, code: str) -> bool:
        return any(state.code == code for state in self.available_states)

    async def handle_zip_code_change(self, zip_code: str, country: str) -> list[AddressUpdate] | None:
        self._generation += 1
        generation = self._generation
        updates = [AddressUpdate("zip", zip_code)]
        self.last_autofill = None

        min_length = _AUTOFILL_MIN_LENGTH.get(country)
        if min_length is None or len(zip_code.replace(" ", "")) < min_length:
            return updates

        self._in_flight += 1
        try:
            location = await self.postal.lookup(zip_code, country)
        except ServiceError as exc:
            logger.info("postal_lookup_failed", zip_code=zip_code, country=country, error=exc.message)
            location = None
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.debug("postal_lookup_stale", zip_code=zip_code)
            return None

        if location is None:
            return updates

        state = normalize_region(location.state)
        self.last_autofill = location
        updates.append(AddressUpdate("city", location.city))
        updates.append(AddressUpdate("state", state if self._is_available_state(state) else ""))
        return updates
