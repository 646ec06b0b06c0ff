"""Tests for guest/account cart reconciliation after login."""

import pytest
from protean.exceptions import InvalidOperationError

from checkout.cart.merge import CartMergeNegotiator, MergeDecision, MergeResolution, carts_equivalent
from checkout.cart.store import LocalCartStore
from checkout.services.port import AuthSession, UserProfile


@pytest.fixture()
def auth():
    return AuthSession(token="token-cust-001", user=UserProfile(id="cust-001", email="jane@example.com"))


@pytest.fixture()
def guest_items(make_item):
    return [
        make_item(item_id="g1", variant_id="100", name="Glitch Tee"),
        make_item(item_id="g2", variant_id="200", name="Static Hoodie"),
    ]


@pytest.fixture()
def account_items(make_item):
    return [make_item(item_id="s9", variant_id="900", name="Noise Cap")]


@pytest.fixture()
def guest_store(guest_items):
    return LocalCartStore(guest_items)


@pytest.fixture()
def negotiator(guest_store, services):
    return CartMergeNegotiator(guest_store, services.carts)


class TestAutomaticDecisions:
    async def test_empty_guest_cart_adopts_account(self, services, auth, account_items):
        services.carts.seed(auth.token, account_items)
        negotiator = CartMergeNegotiator(LocalCartStore(), services.carts)

        assert await negotiator.on_login(auth) is MergeDecision.AUTO_ADOPT_ACCOUNT
        assert negotiator.resolution is MergeResolution.ADOPTED_ACCOUNT
        assert await negotiator.active_store.items() == account_items

    async def test_empty_account_cart_keeps_guest(self, negotiator, auth, guest_items, services):
        decision = await negotiator.on_login(auth)
        assert decision is MergeDecision.AUTO_KEEP_GUEST
        assert negotiator.active_store.identity == "guest"
        assert await negotiator.active_store.items() == guest_items
        assert services.carts.called("clear_cart") == []

    async def test_equivalent_carts_adopt_account(self, negotiator, auth, guest_items, services, make_item):
        server_copy = [make_item(item_id=f"s-{item.variant_id}", variant_id=item.variant_id) for item in guest_items]
        services.carts.seed(auth.token, server_copy)
        assert await negotiator.on_login(auth) is MergeDecision.AUTO_ADOPT_ACCOUNT
        assert negotiator.active_store.identity == "account"

    async def test_account_cart_failure_keeps_guest(self, negotiator, auth, guest_items, services):
        services.carts.configure(should_succeed=False)
        assert await negotiator.on_login(auth) is MergeDecision.AUTO_KEEP_GUEST
        assert negotiator.last_error.message == "Login successful, but cart check failed"
        assert await negotiator.active_store.items() == guest_items

    async def test_automatic_decision_is_not_pending(self, negotiator, auth):
        await negotiator.on_login(auth)
        assert not negotiator.pending
        assert negotiator.resolved


class TestPrompt:
    async def test_conflicting_carts_prompt(self, negotiator, auth, services, account_items):
        services.carts.seed(auth.token, account_items)
        assert await negotiator.on_login(auth) is MergeDecision.PROMPT
        assert negotiator.pending
        assert negotiator.active_store.identity == "guest"
        assert len(negotiator.guest_items) == 2
        assert len(negotiator.account_items) == 1

    async def test_cancel_keeps_guest_cart_and_leaves_account_cart(
        self, negotiator, auth, services, account_items, guest_items, guest_store
    ):
        services.carts.seed(auth.token, account_items)
        await negotiator.on_login(auth)

        assert await negotiator.cancel() is MergeResolution.KEPT_GUEST
        assert await negotiator.active_store.items() == guest_items
        assert services.carts.carts[auth.token] == account_items
        assert services.carts.called("clear_cart") == []
        assert await guest_store.items() == []

    async def test_confirm_adopts_account_cart(self, negotiator, auth, services, account_items, guest_store):
        services.carts.seed(auth.token, account_items)
        await negotiator.on_login(auth)

        assert await negotiator.confirm() is MergeResolution.ADOPTED_ACCOUNT
        assert await negotiator.active_store.items() == account_items
        assert await guest_store.items() == []

    async def test_resolution_is_irreversible(self, negotiator, auth, services, account_items):
        services.carts.seed(auth.token, account_items)
        await negotiator.on_login(auth)
        await negotiator.cancel()

        with pytest.raises(InvalidOperationError):
            await negotiator.confirm()
        with pytest.raises(InvalidOperationError):
            await negotiator.cancel()

    async def test_login_runs_once(self, negotiator, auth, services, account_items):
        services.carts.seed(auth.token, account_items)
        await negotiator.on_login(auth)
        with pytest.raises(InvalidOperationError):
            await negotiator.on_login(auth)

    async def test_confirm_without_prompt(self, negotiator):
        with pytest.raises(InvalidOperationError):
            await negotiator.confirm()


class TestAttachAccount:
    async def test_logged_in_customer_uses_account_cart(self, negotiator, auth, services, account_items):
        services.carts.seed(auth.token, account_items)
        negotiator.attach_account(auth)
        assert negotiator.resolution is MergeResolution.ADOPTED_ACCOUNT
        assert await negotiator.active_store.items() == account_items


def test_carts_equivalent_ignores_order(make_item):
    first = [make_item(item_id="a", variant_id="1"), make_item(item_id="b", variant_id="2")]
    assert carts_equivalent(first, list(reversed(first)))
    assert not carts_equivalent(first, first[:1])
