"""Cart storage behind one contract.

``LocalCartStore`` holds a guest cart for the lifetime of the session;
``ServerCartStore`` reads and writes an authenticated user's server cart.
Only the cart merge negotiator decides which store is operative.
"""

from abc import ABC, abstractmethod
from dataclasses import replace

import structlog

from checkout.cart.items import CartLineItem
from checkout.services.port import CartService

logger = structlog.get_logger(__name__)


class CartStore(ABC):
    identity: str

    @abstractmethod
    async def items(self) -> list[CartLineItem]: ...

    @abstractmethod
    async def remove(self, item_ids: list[str]) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...


class LocalCartStore(CartStore):
    """Ephemeral, client-held cart of a guest."""

    identity = "guest"

    def __init__(self, items: list[CartLineItem] | None = None) -> None:
        self._items: list[CartLineItem] = list(items or [])

    async def items(self) -> list[CartLineItem]:
        return list(self._items)

    def add(self, item: CartLineItem) -> None:
        for index, existing in enumerate(self._items):
            if existing.variant_id == item.variant_id:
                self._items[index] = replace(existing, quantity=existing.quantity + item.quantity)
                return
        self._items.append(item)

    async def remove(self, item_ids: list[str]) -> None:
        wanted = set(item_ids)
        self._items = [item for item in self._items if item.id not in wanted]

    async def clear(self) -> None:
        self._items = []

    def snapshot(self) -> "LocalCartStore":
        return LocalCartStore(self._items)


class ServerCartStore(CartStore):
    """Server-persisted cart reached through ``CartService`` with a bearer token."""

    identity = "account"

    def __init__(self, service: CartService, token: str) -> None:
        self.service = service
        self.token = token

    async def items(self) -> list[CartLineItem]:
        return await self.service.get_cart(self.token)

    async def remove(self, item_ids: list[str]) -> None:
        for item_id in item_ids:
            await self.service.remove_item(self.token, item_id)

    async def clear(self) -> None:
        await self.service.clear_cart(self.token)
        logger.info("server_cart_cleared")
