"""Domain events published by the order lifecycle.

Events are immutable facts, published to the notification collaborator only
after the transaction that produced them has committed. Amounts travel as
strings so cents survive serialization exactly.
"""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout
from checkout.streams import OrderStream


@checkout.event(part_of=OrderStream)
class OrderCreated:
    """A cart was priced, stock was reserved and the order was persisted."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=40)
    user_id = Identifier(required=True)
    total_amount = String(required=True)  # serialized Decimal
    currency = String(max_length=3, default="USD")
    item_count = Integer(required=True, min_value=1)
    coupon_code = String(max_length=20)
    created_at = DateTime(required=True)


@checkout.event(part_of=OrderStream)
class OrderCancelled:
    """The order was cancelled and its reserved stock released."""

    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=40)
    user_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)


@checkout.event(part_of=OrderStream)
class OrderShipped:
    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=40)
    user_id = Identifier(required=True)
    tracking_number = String(required=True, max_length=50)
    carrier = String(max_length=100)
    estimated_delivery = DateTime(required=True)
    shipped_at = DateTime(required=True)


@checkout.event(part_of=OrderStream)
class OrderDelivered:
    __version__ = "v1"

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=40)
    user_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


ORDER_EVENTS = (OrderCreated, OrderCancelled, OrderShipped, OrderDelivered)
