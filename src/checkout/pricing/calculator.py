"""Pricing calculator: pure cart totals in fixed-point currency.

    subtotal       = Σ unit_price × quantity
    item_discount  = Σ unit_price × quantity × discount_percent / 100
    taxable_amount = subtotal − item_discount
    tax            = taxable_amount × tax_rate
    total          = taxable_amount + tax + shipping − coupon_discount

Every derived amount is rounded half-up to the cent where it is produced,
not only at the grand total. The coupon discount is capped at the taxable
amount so the combined discount never exceeds the subtotal.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def as_decimal(value) -> Decimal:
    # floats go through str() so 0.1 stays 0.1
    if isinstance(value, float):
        value = str(value)
    return Decimal(value)


def to_money(value) -> Decimal:
    """Round any numeric value half-up to whole cents."""
    return as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricedLine:
    """One resolved cart line: price and product discount as of checkout."""

    product_id: int
    unit_price: Decimal
    quantity: int
    discount_percent: Decimal = Decimal("0")

    @property
    def line_total(self) -> Decimal:
        return to_money(as_decimal(self.unit_price) * self.quantity)

    @property
    def discount_amount(self) -> Decimal:
        return to_money(self.line_total * as_decimal(self.discount_percent) / 100)

    @property
    def final_price(self) -> Decimal:
        return self.line_total - self.discount_amount


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    item_discount: Decimal
    coupon_discount: Decimal
    taxable_amount: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @property
    def discount_total(self) -> Decimal:
        """Everything taken off the subtotal: product discounts plus the coupon."""
        return self.item_discount + self.coupon_discount


def calculate_pricing(
    lines: Iterable[PricedLine],
    coupon_discount=ZERO,
    shipping=ZERO,
    tax_rate=ZERO,
) -> PricingBreakdown:
    lines = list(lines)

    subtotal = sum((line.line_total for line in lines), ZERO)
    item_discount = sum((line.discount_amount for line in lines), ZERO)
    taxable_amount = subtotal - item_discount
    tax = to_money(taxable_amount * as_decimal(tax_rate))
    shipping = to_money(shipping)
    coupon_discount = min(to_money(coupon_discount), taxable_amount)

    return PricingBreakdown(
        subtotal=subtotal,
        item_discount=item_discount,
        coupon_discount=coupon_discount,
        taxable_amount=taxable_amount,
        tax=tax,
        shipping=shipping,
        total=taxable_amount + tax + shipping - coupon_discount,
    )
