"""Application tests for order creation: pricing, reservation and atomicity."""

import re
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from protean.exceptions import ValidationError
from sqlalchemy import func, select

from checkout.config import CheckoutSettings, set_settings
from checkout.errors import (
    CouponRejection,
    InsufficientStock,
    InvalidCoupon,
    ProductInactive,
    ProductNotFound,
)
from checkout.order.creation import CreateOrder, create_order
from checkout.order.order import Order, OrderStatus, PaymentStatus
from checkout.utils.db import unit_of_work


def _order_count():
    with unit_of_work() as session:
        return session.scalar(select(func.count(Order.id)))


class TestCreateOrder:
    def test_reference_cart_totals(self, make_product, place_order):
        product_id = make_product(price="20.00", stock=10)

        order = place_order([(product_id, 2)])

        assert order.subtotal == Decimal("40.00")
        assert order.tax_amount == Decimal("3.20")
        assert order.shipping_amount == Decimal("5.99")
        assert order.discount_amount == Decimal("0.00")
        assert order.total_amount == Decimal("49.19")
        assert order.verify_totals()

    def test_new_order_is_pending(self, make_product, place_order):
        order = place_order([(make_product(), 1)])

        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.currency == "USD"
        assert re.fullmatch(r"ORD-\d{14}-[0-9A-F]{6}", order.order_number)

    def test_reserves_stock(self, make_product, place_order, stock_of):
        product_id = make_product(stock=10)

        place_order([(product_id, 3)])

        assert stock_of(product_id) == 7

    def test_items_snapshot_product_at_checkout(self, make_product, place_order):
        product_id = make_product(name="Desk Lamp", price="12.50", stock=10, discount_percent=Decimal("20"))

        order = place_order([(product_id, 4)])

        [item] = order.items
        assert item.product_name == "Desk Lamp"
        assert item.unit_price == Decimal("12.50")
        assert item.total_price == Decimal("50.00")
        assert item.discount_amount == Decimal("10.00")
        assert item.final_price == Decimal("40.00")
        assert order.discount_amount == Decimal("10.00")
        assert order.tax_amount == Decimal("3.20")

    def test_repeated_lines_are_merged(self, make_product, place_order, stock_of):
        product_id = make_product(stock=10)

        order = place_order([(product_id, 1), (product_id, 2)])

        assert len(order.items) == 1
        assert order.items[0].quantity == 3
        assert stock_of(product_id) == 7

    def test_records_addresses_and_notes(self, make_product, place_order):
        order = place_order([(make_product(), 1)], notes="Leave at the door")

        assert order.shipping_address["city"] == "Springfield"
        assert order.billing_address["postal_code"] == "62701"
        assert order.notes == "Leave at the door"

    def test_express_shipping(self, make_product, place_order):
        order = place_order([(make_product(price="20.00"), 2)], shipping_method="express")

        assert order.shipping_amount == Decimal("15.99")
        assert order.total_amount == Decimal("59.19")

    def test_publishes_order_created(self, make_product, place_order, notifier):
        order = place_order([(make_product(), 2)])

        [event] = notifier.events_named("OrderCreated")
        assert event.order_id == str(order.id)
        assert event.item_count == 2
        assert event.total_amount == str(order.total_amount)

    def test_notification_failure_does_not_fail_checkout(self, make_product, place_order, notifier, stock_of):
        product_id = make_product(stock=5)
        notifier.configure(should_succeed=False)

        order = place_order([(product_id, 1)])

        assert order.id is not None
        assert stock_of(product_id) == 4


class TestCreateOrderWithCoupon:
    def test_fixed_coupon(self, make_product, make_coupon, place_order, coupon_uses):
        make_coupon(code="SAVE10", value="10", min_order_amount="25", usage_limit=1)
        product_id = make_product(price="30.00")

        order = place_order([(product_id, 1)], coupon_code="save10")

        assert order.coupon_code == "SAVE10"
        assert order.coupon_discount == Decimal("10.00")
        assert order.discount_amount == Decimal("10.00")
        assert order.total_amount == Decimal("28.39")
        assert order.verify_totals()
        assert coupon_uses("SAVE10") == 1

    def test_percentage_coupon(self, make_product, make_coupon, place_order):
        make_coupon(code="TAKE20", coupon_type="percentage", value="20", max_discount="15")

        order = place_order([(make_product(price="100.00"), 1)], coupon_code="TAKE20")

        assert order.coupon_discount == Decimal("15.00")

    def test_free_shipping_coupon_zeroes_shipping(self, checkout_db, make_product, make_coupon, place_order):
        set_settings(
            CheckoutSettings(
                environment="test",
                database_uri=checkout_db,
                shipping_rates={"standard": Decimal("9.99")},
            )
        )
        make_coupon(code="SHIPFREE", coupon_type="free_shipping", value="0")

        order = place_order([(make_product(price="20.00"), 1)], coupon_code="SHIPFREE")

        assert order.shipping_amount == Decimal("0.00")
        assert order.coupon_discount == Decimal("0.00")
        assert order.total_amount == Decimal("21.60")

    def test_rejected_coupon_leaves_no_trace(self, make_product, make_coupon, place_order, stock_of, coupon_uses):
        make_coupon(code="BIGSPEND", value="10", min_order_amount="100")
        product_id = make_product(price="30.00", stock=5)

        with pytest.raises(InvalidCoupon) as exc:
            place_order([(product_id, 1)], coupon_code="BIGSPEND")

        assert exc.value.reason == CouponRejection.MINIMUM_NOT_MET
        assert stock_of(product_id) == 5
        assert coupon_uses("BIGSPEND") == 0
        assert _order_count() == 0

    def test_unknown_coupon(self, make_product, place_order):
        with pytest.raises(InvalidCoupon) as exc:
            place_order([(make_product(), 1)], coupon_code="NOPE")

        assert exc.value.reason == CouponRejection.NOT_FOUND


class TestCreateOrderFailures:
    def test_missing_product(self, make_product, place_order, stock_of):
        product_id = make_product(stock=5)

        with pytest.raises(ProductNotFound) as exc:
            place_order([(product_id, 1), (999, 1)])

        assert exc.value.product_id == 999
        assert stock_of(product_id) == 5
        assert _order_count() == 0

    def test_inactive_product(self, make_product, place_order):
        product_id = make_product(is_active=False)

        with pytest.raises(ProductInactive):
            place_order([(product_id, 1)])

    def test_insufficient_stock_rolls_back_other_lines(self, make_product, place_order, stock_of):
        plenty = make_product(name="Plenty", stock=10)
        scarce = make_product(name="Scarce", stock=1)

        with pytest.raises(InsufficientStock) as exc:
            place_order([(plenty, 2), (scarce, 2)])

        assert exc.value.product_id == scarce
        assert stock_of(plenty) == 10
        assert stock_of(scarce) == 1
        assert _order_count() == 0

    def test_unknown_shipping_method(self, make_product, place_order):
        with pytest.raises(ValidationError) as exc:
            place_order([(make_product(), 1)], shipping_method="teleport")

        assert "shipping_method" in exc.value.messages

    def test_missing_required_fields_are_rejected_on_construction(self):
        with pytest.raises(ValidationError) as exc:
            CreateOrder(
                user_id="",
                items=[{"product_id": 1, "quantity": 1}],
                shipping_address={"street": "1 Main St"},
                payment_method="",
                shipping_method="standard",
            )

        assert {"user_id", "billing_address", "payment_method"} <= set(exc.value.messages)

    def test_bad_lines_and_addresses_are_rejected_before_side_effects(self, make_product, stock_of):
        product_id = make_product(stock=5)
        command = CreateOrder(
            user_id="user-001",
            items=[{"product_id": product_id, "quantity": 0}, {"product_id": "abc", "quantity": 1}],
            shipping_address={"street": "1 Main St", "city": "Springfield"},
            billing_address={"street": "1 Main St", "city": "Springfield", "postal_code": "62701", "country": "US"},
            payment_method="credit_card",
            shipping_method="standard",
        )

        with pytest.raises(ValidationError) as exc:
            create_order(command)

        assert set(exc.value.messages) == {"items", "shipping_address"}
        assert "postal_code" in exc.value.messages["shipping_address"][0]
        assert stock_of(product_id) == 5
        assert _order_count() == 0

    def test_empty_cart(self, place_order):
        with pytest.raises(ValidationError) as exc:
            place_order([])

        assert "items" in exc.value.messages


class TestConcurrentCheckout:
    def test_two_orders_competing_for_last_units(self, make_product, place_order, stock_of):
        product_id = make_product(stock=3)

        def _attempt(user_id):
            try:
                return place_order([(product_id, 2)], user_id=user_id)
            except InsufficientStock as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(_attempt, ["user-a", "user-b"]))

        orders = [r for r in results if isinstance(r, Order)]
        failures = [r for r in results if isinstance(r, InsufficientStock)]
        assert len(orders) == 1
        assert len(failures) == 1
        assert stock_of(product_id) == 1

    def test_many_buyers_never_oversell(self, make_product, place_order, stock_of):
        product_id = make_product(stock=4)

        def _attempt(index):
            try:
                place_order([(product_id, 1)], user_id=f"user-{index}")
                return True
            except InsufficientStock:
                return False

        with ThreadPoolExecutor(max_workers=6) as pool:
            outcomes = list(pool.map(_attempt, range(10)))

        assert outcomes.count(True) == 4
        assert stock_of(product_id) == 0
        assert _order_count() == 4
