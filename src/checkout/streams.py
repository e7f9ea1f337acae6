"""Aggregates that own the checkout message streams.

Orders and coupons are stored as SQLAlchemy rows (see ``order/order.py`` and
``coupon/coupon.py``). These aggregates give the commands and events about
those rows a home in the domain: ``CreateOrder`` and the order events belong
to the order stream, coupon administration to the coupon stream.
"""

from protean.fields import Identifier, String

from checkout.domain import checkout


@checkout.aggregate
class OrderStream:
    order_id = Identifier()
    order_number = String(max_length=40)


@checkout.aggregate
class CouponStream:
    code = String(max_length=20)
