"""Shared BDD fixtures and step definitions for the Checkout domain."""

import asyncio

import pytest
from pytest_bdd import given, parsers, then


@pytest.fixture()
def checkout_run():
    """Mutable scenario state: the running machine and the last outcome."""
    return {"machine": None, "outcome": None, "account_token": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a guest cart with "{name}" that ships to "{region}"'))
def _(checkout_run, start_checkout, make_item, name, region):
    items = [make_item(name=name, shipping_regions=[region])]
    checkout_run["machine"] = asyncio.run(start_checkout(items=items))


@given("the payment processor is refusing payments")
def _(services):
    services.payments.configure(should_succeed=False, failure_reason="Payment provider unavailable")


@given(parsers.cfparse("a registered shopper with a saved cart of {count:d} other item"))
def _(checkout_run, services, registered_customer, make_item, count):
    auth = asyncio.run(services.identity.login(**registered_customer))
    services.carts.seed(
        auth.token,
        [make_item(item_id=f"saved-{index}", variant_id=f"90{index}", name="Noise Cap") for index in range(count)],
    )
    checkout_run["account_token"] = auth.token


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the checkout is in the "{step}" step'))
def _(checkout_run, step):
    assert checkout_run["machine"].step.value == step


@then("no order was placed")
def _(services):
    assert services.orders.orders == {}
