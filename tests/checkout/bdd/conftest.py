"""Shared BDD fixtures and step definitions for checkout."""

from decimal import Decimal

import pytest
from pytest_bdd import given, parsers, then, when

from checkout.errors import CheckoutError, InsufficientStock, InvalidCoupon


@pytest.fixture()
def error():
    """Container for the checkout error raised by the last When step."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a product priced {price} with {stock:d} in stock"), target_fixture="product_id")
def _(make_product, price, stock):
    return make_product(price=price, stock=stock)


@given(
    parsers.cfparse(
        'a fixed coupon "{code}" worth {value} with a minimum order of {minimum} and a usage limit of {limit:d}'
    ),
    target_fixture="coupon",
)
def _(make_coupon, code, value, minimum, limit):
    return make_coupon(code=code, coupon_type="fixed", value=value, min_order_amount=minimum, usage_limit=limit)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
def _order(place_order, error, items, **kwargs):
    error["exc"] = None
    try:
        return place_order(items, **kwargs)
    except CheckoutError as exc:
        error["exc"] = exc
        return None


@when(parsers.cfparse('customer "{user_id}" orders {quantity:d} of the product'), target_fixture="order")
def _(place_order, error, product_id, user_id, quantity):
    return _order(place_order, error, [(product_id, quantity)], user_id=user_id)


@when(
    parsers.cfparse('customer "{user_id}" orders {quantity:d} of the product with "{method}" shipping'),
    target_fixture="order",
)
def _(place_order, error, product_id, user_id, quantity, method):
    return _order(place_order, error, [(product_id, quantity)], user_id=user_id, shipping_method=method)


@when(
    parsers.cfparse('customer "{user_id}" orders {quantity:d} of the product with coupon "{code}"'),
    target_fixture="order",
)
def _(place_order, error, product_id, user_id, quantity, code):
    return _order(place_order, error, [(product_id, quantity)], user_id=user_id, coupon_code=code)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the order subtotal is {amount}"))
def _(order, amount):
    assert order.subtotal == Decimal(amount)


@then(parsers.cfparse("the order tax is {amount}"))
def _(order, amount):
    assert order.tax_amount == Decimal(amount)


@then(parsers.cfparse("the order shipping is {amount}"))
def _(order, amount):
    assert order.shipping_amount == Decimal(amount)


@then(parsers.cfparse("the order total is {amount}"))
def _(order, amount):
    assert order.total_amount == Decimal(amount)


@then(parsers.cfparse("the order coupon discount is {amount}"))
def _(order, amount):
    assert order.coupon_discount == Decimal(amount)


@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert order.status == status


@then(parsers.cfparse("the product stock is {stock:d}"))
def _(stock_of, product_id, stock):
    assert stock_of(product_id) == stock


@then("the order is rejected for insufficient stock")
def _(error):
    assert isinstance(error["exc"], InsufficientStock)


@then(parsers.cfparse('the order is rejected because the coupon is "{reason}"'))
def _(error, reason):
    assert isinstance(error["exc"], InvalidCoupon)
    assert error["exc"].reason.value == reason


@then(parsers.cfparse('coupon "{code}" has been used {count:d} time'))
@then(parsers.cfparse('coupon "{code}" has been used {count:d} times'))
def _(coupon_uses, code, count):
    assert coupon_uses(code) == count


@then(parsers.cfparse('{count:d} "{name}" event is published'))
@then(parsers.cfparse('{count:d} "{name}" events are published'))
def _(notifier, count, name):
    assert len(notifier.events_named(name)) == count
