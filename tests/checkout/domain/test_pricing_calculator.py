"""Tests for the pricing calculator: money arithmetic and rounding."""

from decimal import Decimal

import pytest

from checkout.pricing.calculator import ZERO, PricedLine, as_decimal, calculate_pricing, to_money


class TestMoneyHelpers:
    def test_rounds_half_up_to_cents(self):
        assert to_money(Decimal("0.005")) == Decimal("0.01")
        assert to_money(Decimal("2.675")) == Decimal("2.68")
        assert to_money(Decimal("1.004")) == Decimal("1.00")

    def test_floats_keep_their_decimal_text(self):
        assert as_decimal(0.1) == Decimal("0.1")
        assert to_money(19.99) == Decimal("19.99")


class TestPricedLine:
    def test_line_without_discount(self):
        line = PricedLine(product_id=1, unit_price=Decimal("20.00"), quantity=2)

        assert line.line_total == Decimal("40.00")
        assert line.discount_amount == Decimal("0.00")
        assert line.final_price == Decimal("40.00")

    def test_line_with_product_discount(self):
        line = PricedLine(product_id=1, unit_price=Decimal("19.99"), quantity=3, discount_percent=Decimal("10"))

        assert line.line_total == Decimal("59.97")
        assert line.discount_amount == Decimal("6.00")
        assert line.final_price == Decimal("53.97")


class TestCalculatePricing:
    def test_reference_cart(self):
        lines = [PricedLine(product_id=1, unit_price=Decimal("20.00"), quantity=2)]

        pricing = calculate_pricing(lines, shipping=Decimal("5.99"), tax_rate=Decimal("0.08"))

        assert pricing.subtotal == Decimal("40.00")
        assert pricing.tax == Decimal("3.20")
        assert pricing.shipping == Decimal("5.99")
        assert pricing.discount_total == Decimal("0.00")
        assert pricing.total == Decimal("49.19")

    def test_coupon_discount_is_subtracted(self):
        lines = [PricedLine(product_id=1, unit_price=Decimal("25.00"), quantity=1)]

        pricing = calculate_pricing(lines, coupon_discount=Decimal("10.00"))

        assert pricing.coupon_discount == Decimal("10.00")
        assert pricing.total == Decimal("15.00")

    def test_coupon_discount_never_exceeds_discounted_subtotal(self):
        lines = [PricedLine(product_id=1, unit_price=Decimal("5.00"), quantity=1)]

        pricing = calculate_pricing(lines, coupon_discount=Decimal("10.00"), tax_rate=Decimal("0.08"))

        assert pricing.coupon_discount == Decimal("5.00")
        assert pricing.discount_total <= pricing.subtotal
        assert pricing.total == Decimal("0.40")

    def test_product_discounts_reduce_taxable_amount(self):
        lines = [
            PricedLine(product_id=1, unit_price=Decimal("50.00"), quantity=2, discount_percent=Decimal("10")),
            PricedLine(product_id=2, unit_price=Decimal("15.00"), quantity=1),
        ]

        pricing = calculate_pricing(lines, shipping=Decimal("5.99"), tax_rate=Decimal("0.08"))

        assert pricing.subtotal == Decimal("115.00")
        assert pricing.item_discount == Decimal("10.00")
        assert pricing.taxable_amount == Decimal("105.00")
        assert pricing.tax == Decimal("8.40")
        assert pricing.total == Decimal("119.39")

    def test_empty_cart_prices_to_zero(self):
        pricing = calculate_pricing([])

        assert pricing.subtotal == ZERO
        assert pricing.total == ZERO

    @pytest.mark.parametrize(
        "prices, coupon, shipping, rate",
        [
            (["9.99", "0.01"], "0", "5.99", "0.08"),
            (["33.33", "33.33", "33.34"], "12.50", "15.99", "0.0725"),
            (["1.11"], "5.00", "0", "0.2"),
            (["1999.99", "0.50"], "250.00", "9.99", "0.065"),
        ],
    )
    def test_total_matches_its_components(self, prices, coupon, shipping, rate):
        lines = [
            PricedLine(product_id=index, unit_price=Decimal(price), quantity=index + 1)
            for index, price in enumerate(prices)
        ]

        pricing = calculate_pricing(lines, Decimal(coupon), Decimal(shipping), Decimal(rate))

        assert pricing.total == pricing.subtotal + pricing.tax + pricing.shipping - pricing.discount_total
        assert pricing.discount_total <= pricing.subtotal
        assert pricing.total == to_money(pricing.total)
