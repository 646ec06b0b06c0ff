"""Saved shipping addresses of an authenticated customer during checkout."""

from dataclasses import replace

import structlog

from checkout.address.normalizer import normalize_region
from checkout.location.lookup import AddressUpdate
from checkout.services.port import AddressService, SavedAddress, ServiceError

logger = structlog.get_logger(__name__)

MAX_SAVED_ADDRESSES = 6


class SavedAddressBook:
    """Address selection state plus the best-effort save after an order.

    Nothing here raises on service failure: a failed listing leaves the book
    empty and a failed save is logged and reported as ``None``.
    """

    def __init__(self, service: AddressService, token: str) -> None:
        self.service = service
        self.token = token
        self.addresses: list[SavedAddress] = []
        self.selected_id: str | None = None
        self.show_new_address_form = False
        self.save_new_address = True

    async def load(self) -> SavedAddress | None:
        """Load the book and return the default shipping address, if any."""
        try:
            self.addresses = await self.service.list(self.token)
        except ServiceError as exc:
            logger.warning("saved_addresses_unavailable", error=exc.message)
            return None

        if not self.addresses:
            self.save_new_address = True
            self.show_new_address_form = True
            return None

        default = next(
            (address for address in self.addresses if address.is_default and address.usable_for_shipping),
            None,
        )
        if default is None:
            return None

        self.selected_id = default.id
        return replace(default, state=normalize_region(default.state))

    def find(self, address_id: str) -> SavedAddress | None:
        return next((address for address in self.addresses if address.id == address_id), None)

    def select(self, address: SavedAddress) -> list[AddressUpdate]:
        self.selected_id = address.id
        self.show_new_address_form = False
        return [
            AddressUpdate("address1", address.address1),
            AddressUpdate("address2", address.address2 or ""),
            AddressUpdate("city", address.city),
            AddressUpdate("state", normalize_region(address.state)),
            AddressUpdate("zip", address.zip),
            AddressUpdate("country", address.country),
        ]

    def start_new_address(self) -> list[AddressUpdate]:
        self.selected_id = None
        self.show_new_address_form = True
        self.save_new_address = True
        return [
            AddressUpdate("address1", ""),
            AddressUpdate("address2", ""),
            AddressUpdate("city", ""),
            AddressUpdate("state", ""),
            AddressUpdate("zip", ""),
            AddressUpdate("country", "US"),
        ]

    def is_duplicate(self, values: dict) -> bool:
        return any(
            address.address1.lower() == values["address1"].lower()
            and address.city.lower() == values["city"].lower()
            and address.zip == values["zip"]
            and address.country == values["country"]
            for address in self.addresses
        )

    def should_save(self) -> bool:
        return self.save_new_address and (
            self.show_new_address_form or not self.addresses or self.selected_id is None
        )

    async def save_after_order(self, info) -> SavedAddress | None:
        """Persist the order's shipping address when it is new to the book."""
        if not self.should_save():
            return None

        values = info.as_dict()
        if self.is_duplicate(values):
            logger.debug("address_already_saved")
            return None

        if len(self.addresses) >= MAX_SAVED_ADDRESSES:
            logger.info("address_book_full", limit=MAX_SAVED_ADDRESSES)
            return None

        address = SavedAddress(
            id=None,
            name=values["name"],
            address1=values["address1"],
            address2=values["address2"],
            city=values["city"],
            state=values["state"],
            zip=values["zip"],
            country=values["country"],
            phone=values["phone"],
            address_type="shipping",
            is_default=not self.addresses,
        )
        try:
            saved = await self.service.create(self.token, address)
        except ServiceError as exc:
            logger.warning("address_save_failed", error=exc.message)
            return None

        self.addresses.append(saved)
        logger.info("address_saved", address_id=saved.id)
        return saved
