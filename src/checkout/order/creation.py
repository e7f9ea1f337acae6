"""Order creation: turns a cart into a priced, persisted order.

Everything below runs in one transaction; a caller retrying after a failure
sees unchanged stock, an unchanged coupon counter and no partial order.

    1. load every product (missing → ProductNotFound, inactive → ProductInactive)
    2. price the cart without a coupon to get the provisional subtotal
    3. validate the coupon against that subtotal (free shipping zeroes shipping)
    4. price again with the coupon discount
    5. reserve stock in ascending product id order, releasing on failure
    6. allocate an order number and persist the order with its item snapshots
    7. consume one coupon use
"""

from decimal import Decimal

import structlog
from protean.exceptions import ValidationError
from protean.fields import Dict, Identifier, List, String, Text

from checkout.catalogue.product import load_products_for_checkout
from checkout.config import CheckoutSettings, get_settings
from checkout.coupon.validation import CartEntry, increment_usage, validate_coupon
from checkout.domain import checkout
from checkout.inventory.ledger import InventoryLedger
from checkout.notification import notify
from checkout.order.events import OrderCreated
from checkout.order.numbering import allocate_order_number
from checkout.order.order import Order, OrderItem, OrderStatus, PaymentStatus
from checkout.order.repository import OrderRepository
from checkout.pricing.calculator import ZERO, PricedLine, calculate_pricing
from checkout.streams import OrderStream
from checkout.utils.db import unit_of_work

logger = structlog.get_logger(__name__)

REQUIRED_ADDRESS_FIELDS = ("street", "city", "postal_code", "country")


@checkout.command(part_of=OrderStream)
class CreateOrder:
    user_id = Identifier(required=True)
    items = List(content_type=Dict, required=True)  # [{"product_id": int, "quantity": int}]
    shipping_address = Dict(required=True)
    billing_address = Dict(required=True)
    payment_method = String(required=True, max_length=50)
    shipping_method = String(required=True, max_length=50)
    coupon_code = String(max_length=20)
    notes = Text()
    currency = String(max_length=3, default="USD")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_order_request(command: CreateOrder) -> None:
    """Reject malformed cart lines and addresses before anything is touched.

    Field types and required values are enforced when the command is built;
    this covers what a single field cannot express.
    """
    errors: dict[str, list[str]] = {}

    if not command.items:
        errors.setdefault("items", []).append("At least one item is required")
    for line in command.items or []:
        product_id, quantity = line.get("product_id"), line.get("quantity")
        if not _is_int(product_id):
            errors.setdefault("items", []).append(f"Invalid product id: {product_id!r}")
        if not _is_int(quantity) or quantity < 1:
            errors.setdefault("items", []).append(f"Quantity for product {product_id} must be at least 1")

    for name in ("shipping_address", "billing_address"):
        address = getattr(command, name) or {}
        missing = [key for key in REQUIRED_ADDRESS_FIELDS if not address.get(key)]
        if missing:
            errors.setdefault(name, []).append(f"Missing address fields: {', '.join(missing)}")

    if errors:
        raise ValidationError(errors)


def requested_quantities(command: CreateOrder) -> dict[int, int]:
    """Quantities per product; repeated lines for one product are added up."""
    quantities: dict[int, int] = {}
    for line in command.items:
        quantities[line["product_id"]] = quantities.get(line["product_id"], 0) + line["quantity"]
    return quantities


def create_order(command: CreateOrder, settings: CheckoutSettings | None = None) -> Order:
    """Create an order atomically. Returns the committed order with its items."""
    check_order_request(command)
    settings = settings or get_settings()
    shipping_cost = settings.shipping_cost_for(command.shipping_method)
    requested = requested_quantities(command)

    with unit_of_work() as session:
        products = load_products_for_checkout(session, requested)
        lines = [
            PricedLine(
                product_id=product_id,
                unit_price=products[product_id].unit_price,
                quantity=quantity,
                discount_percent=products[product_id].discount_percent,
            )
            for product_id, quantity in sorted(requested.items())
        ]

        provisional = calculate_pricing(lines, shipping=shipping_cost, tax_rate=settings.tax_rate)

        coupon = None
        coupon_discount = ZERO
        if command.coupon_code:
            cart = [
                CartEntry(
                    product_id=line.product_id,
                    category_id=products[line.product_id].category_id,
                    quantity=line.quantity,
                )
                for line in lines
            ]
            coupon = validate_coupon(
                session, command.coupon_code, provisional.subtotal, cart, command.user_id, lock=True
            )
            coupon_discount = coupon.amount
            if coupon.free_shipping:
                shipping_cost = ZERO

        pricing = calculate_pricing(lines, coupon_discount, shipping_cost, settings.tax_rate)

        InventoryLedger(session).reserve_all(requested)

        repository = OrderRepository(session)
        order = Order(
            order_number=allocate_order_number(repository, settings.order_number_attempts),
            user_id=str(command.user_id),
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=pricing.subtotal,
            tax_amount=pricing.tax,
            shipping_amount=pricing.shipping,
            discount_amount=pricing.discount_total,
            coupon_discount=pricing.coupon_discount,
            total_amount=pricing.total,
            refunded_amount=Decimal("0.00"),
            currency=command.currency or settings.currency,
            payment_method=command.payment_method,
            shipping_method=command.shipping_method,
            shipping_address=dict(command.shipping_address),
            billing_address=dict(command.billing_address),
            coupon_code=coupon.code if coupon else None,
            notes=command.notes,
            items=[OrderItem.from_priced_line(line, products[line.product_id].name) for line in lines],
        )
        repository.add(order)

        if coupon is not None:
            increment_usage(session, coupon.code)

        event = OrderCreated(
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=order.user_id,
            total_amount=str(order.total_amount),
            currency=order.currency,
            item_count=sum(item.quantity for item in order.items),
            coupon_code=order.coupon_code,
            created_at=order.created_at,
        )

    logger.info(
        "Order created",
        order_id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        total_amount=str(order.total_amount),
        coupon_code=order.coupon_code,
    )
    notify(event)
    return order
