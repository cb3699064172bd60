"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.order.order import Order
from protean.utils.globals import current_domain
from pytest_bdd import given, parsers, then


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def catalog():
    """Products seeded by Given steps, keyed by name."""
    return {}


@pytest.fixture()
def deliveries():
    """Webhook outcomes in delivery order."""
    return []


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{name}" priced {price:f} with {stock:d} in stock'))
def _(catalog, seed_product, name, price, stock):
    catalog[name] = seed_product(name=name, price=price, stock_quantity=stock)


@given(parsers.cfparse('an order for {quantity:d} "{name}" is awaiting payment'), target_fixture="order")
def _(catalog, place, fake_paypal, quantity, name):
    return place((catalog[name], quantity))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert current_domain.repository_for(Order).get(order.id).status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def _(order, status):
    assert current_domain.repository_for(Order).get(order.id).payment_status == status


@then(parsers.cfparse('the last delivery is answered with {status_code:d} "{detail}"'))
def _(deliveries, status_code, detail):
    assert (deliveries[-1].status_code, deliveries[-1].detail) == (status_code, detail)


@then(parsers.cfparse("the last delivery is answered with {status_code:d}"))
def _(deliveries, status_code):
    assert deliveries[-1].status_code == status_code
