"""Reconciliation of the guest cart with an account cart after login.

The negotiator is the only component that changes which ``CartStore`` is
operative. It resolves exactly once per session: automatically when the
carts do not conflict, otherwise through an explicit ``confirm`` (adopt the
account cart) or ``cancel`` (keep the guest cart).
"""

from enum import Enum

import structlog
from protean.exceptions import InvalidOperationError

from checkout.cart.items import CartLineItem, cart_signature
from checkout.cart.store import CartStore, LocalCartStore, ServerCartStore
from checkout.errors import LookupDegraded
from checkout.services.port import AuthSession, CartService, ServiceError

logger = structlog.get_logger(__name__)


class MergeDecision(Enum):
    AUTO_ADOPT_ACCOUNT = "auto_adopt_account"
    AUTO_KEEP_GUEST = "auto_keep_guest"
    PROMPT = "prompt"


class MergeResolution(Enum):
    ADOPTED_ACCOUNT = "adopted_account"
    KEPT_GUEST = "kept_guest"


def carts_equivalent(first: list[CartLineItem], second: list[CartLineItem]) -> bool:
    return cart_signature(first) == cart_signature(second)


class CartMergeNegotiator:
    def __init__(self, guest_store: LocalCartStore, cart_service: CartService) -> None:
        self.guest_store = guest_store
        self.cart_service = cart_service
        self.active_store: CartStore = guest_store
        self.account_store: ServerCartStore | None = None
        self.guest_items: list[CartLineItem] = []
        self.account_items: list[CartLineItem] = []
        self.decision: MergeDecision | None = None
        self.resolution: MergeResolution | None = None
        self.last_error: LookupDegraded | None = None

    @property
    def pending(self) -> bool:
        return self.decision is MergeDecision.PROMPT and self.resolution is None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None

    def attach_account(self, auth: AuthSession) -> None:
        """Use the account cart from the start, for a customer who arrived logged in."""
        if self.decision is not None:
            raise InvalidOperationError("Cart reconciliation already ran for this checkout")
        self.account_store = ServerCartStore(self.cart_service, auth.token)
        self.active_store = self.account_store
        self.decision = MergeDecision.AUTO_ADOPT_ACCOUNT
        self.resolution = MergeResolution.ADOPTED_ACCOUNT

    async def on_login(self, auth: AuthSession) -> MergeDecision:
        """Compare the carts and resolve automatically when they do not conflict."""
        if self.decision is not None:
            raise InvalidOperationError("Cart reconciliation already ran for this checkout")

        self.account_store = ServerCartStore(self.cart_service, auth.token)
        self.guest_items = await self.guest_store.items()

        if not self.guest_items:
            self.decision = MergeDecision.AUTO_ADOPT_ACCOUNT
            await self._adopt_account()
            return self.decision

        try:
            self.account_items = await self.account_store.items()
        except ServiceError as exc:
            logger.warning("account_cart_unavailable", error=exc.message)
            self.last_error = LookupDegraded("Login successful, but cart check failed", source="account_cart")
            self.decision = MergeDecision.AUTO_KEEP_GUEST
            await self._keep_guest()
            return self.decision

        if not self.account_items:
            self.decision = MergeDecision.AUTO_KEEP_GUEST
            await self._keep_guest()
        elif carts_equivalent(self.guest_items, self.account_items):
            self.decision = MergeDecision.AUTO_ADOPT_ACCOUNT
            await self._adopt_account()
        else:
            self.decision = MergeDecision.PROMPT

        logger.info(
            "cart_merge_evaluated",
            decision=self.decision.value,
            guest_count=len(self.guest_items),
            account_count=len(self.account_items),
        )
        return self.decision

    def _require_pending(self) -> None:
        if self.resolution is not None:
            raise InvalidOperationError("The cart merge was already resolved")
        if self.decision is not MergeDecision.PROMPT:
            raise InvalidOperationError("No cart merge decision is pending")

    async def confirm(self) -> MergeResolution:
        """Adopt the account cart and discard the guest cart."""
        self._require_pending()
        await self._adopt_account()
        return self.resolution

    async def cancel(self) -> MergeResolution:
        """Keep the guest cart for the rest of this checkout.

        The account cart is left untouched on the server.
        """
        self._require_pending()
        await self._keep_guest()
        return self.resolution

    async def _adopt_account(self) -> None:
        self.active_store = self.account_store
        self.resolution = MergeResolution.ADOPTED_ACCOUNT
        await self.guest_store.clear()
        logger.info("cart_merge_resolved", resolution=self.resolution.value)

    async def _keep_guest(self) -> None:
        self.active_store = self.guest_store.snapshot()
        self.resolution = MergeResolution.KEPT_GUEST
        await self.guest_store.clear()
        logger.info("cart_merge_resolved", resolution=self.resolution.value)
