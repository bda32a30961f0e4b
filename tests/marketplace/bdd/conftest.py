"""Shared BDD fixtures and step definitions for the Marketplace domain."""

import pytest
from marketplace.inventory.ledger import stock_of
from marketplace.order.queries import get_order_by_id
from pytest_bdd import given, parsers, then


@pytest.fixture()
def outcome():
    """The order under test and the failure of the last attempted step, if any."""
    return {"order_id": None, "error": None}


def order_of(admin, outcome):
    return get_order_by_id(outcome["order_id"], admin)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" has {stock:d} in stock at {price:f}'))
def _(add_product, product_id, stock, price):
    add_product(product_id, stock=stock, price=price)


@given(parsers.cfparse('the buyer ordered {quantity:d} of "{product_id}" paying "{method}"'))
def _(create_order, buyer, address, outcome, quantity, product_id, method):
    order_id = create_order(
        buyer,
        seller_id="seller-001",
        items=[{"product_id": product_id, "quantity": quantity}],
        payment_method=method,
        delivery_address=address,
    )
    outcome["order_id"] = order_id


@given("the seller confirmed the order")
def _(set_status, seller, outcome):
    set_status(outcome["order_id"], seller, "confirmed")


@given(parsers.cfparse('the seller shipped the order with tracking number "{tracking_number}"'))
def _(set_status, seller, outcome, tracking_number):
    set_status(outcome["order_id"], seller, "shipped", tracking_number=tracking_number)


@given(parsers.cfparse('the seller delivered the order with proof "{proof}"'))
def _(set_status, seller, outcome, proof):
    set_status(outcome["order_id"], seller, "delivered", proof_of_delivery=proof)


@given("the buyer paid for the order")
def _(pay, buyer, outcome):
    pay(outcome["order_id"], actor=buyer)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(admin, outcome, status):
    assert order_of(admin, outcome).status == status


@then(parsers.cfparse('the escrow status is "{escrow_status}"'))
def _(admin, outcome, escrow_status):
    assert order_of(admin, outcome).escrow_status == escrow_status


@then(parsers.cfparse("the order total is {total:f}"))
def _(admin, outcome, total):
    assert order_of(admin, outcome).total_amount == total


@then(parsers.cfparse('the stock of "{product_id}" is {stock:d}'))
def _(product_id, stock):
    assert stock_of(product_id) == stock


@then(parsers.cfparse('the request fails with "{kind}"'))
def _(outcome, kind):
    assert outcome["error"] is not None, "Expected the step to fail but it succeeded"
    assert outcome["error"].kind == kind
