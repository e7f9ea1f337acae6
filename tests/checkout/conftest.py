from decimal import Decimal

import pytest
from sqlalchemy import select

from checkout.catalogue.product import Product
from checkout.coupon.coupon import Coupon
from checkout.coupon.management import CreateCoupon, create_coupon
from checkout.domain import checkout
from checkout.notification import get_notifier
from checkout.order.creation import CreateOrder, create_order
from checkout.utils.db import unit_of_work

ADDRESS = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}


@pytest.fixture()
def make_product():
    """Insert a product and return its id."""

    def _make(name="Widget", price="20.00", stock=10, **overrides):
        with unit_of_work() as session:
            product = Product(name=name, price=Decimal(price), stock=stock, **overrides)
            session.add(product)
            session.flush()
            return product.id

    return _make


@pytest.fixture()
def make_coupon():
    def _make(code="SAVE10", coupon_type="fixed", value="10", **overrides):
        return create_coupon(CreateCoupon(code=code, coupon_type=coupon_type, value=value, **overrides))

    return _make


@pytest.fixture()
def place_order():
    """Place an order for ``[(product_id, quantity), ...]`` with sensible defaults.

    Runs in its own domain context so worker threads can place orders too.
    """

    def _place(items, user_id="user-001", coupon_code=None, shipping_method="standard", **overrides):
        with checkout.domain_context():
            command = CreateOrder(
                user_id=user_id,
                items=[{"product_id": product_id, "quantity": quantity} for product_id, quantity in items],
                shipping_address=dict(ADDRESS),
                billing_address=dict(ADDRESS),
                payment_method="credit_card",
                shipping_method=shipping_method,
                coupon_code=coupon_code,
                **overrides,
            )
            return create_order(command)

    return _place


@pytest.fixture()
def stock_of():
    def _stock(product_id):
        with unit_of_work() as session:
            return session.scalar(select(Product.stock).where(Product.id == product_id))

    return _stock


@pytest.fixture()
def coupon_uses():
    def _uses(code):
        with unit_of_work() as session:
            return session.scalar(select(Coupon.used_count).where(Coupon.code == code))

    return _uses


@pytest.fixture()
def notifier():
    return get_notifier()
