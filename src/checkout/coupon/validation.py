"""Coupon validation: decide whether a coupon applies to a cart, and for how much.

Checks run in a fixed order and stop at the first failure:

    1. coupon exists and is active
    2. start date reached
    3. expiry date not passed
    4. global usage limit (and the per-user limit) not exhausted
    5. subtotal ≥ minimum order amount
    6. first-time / new-customer coupons: the user has no earlier orders
    7. no cart item is excluded (one excluded item rejects the whole cart)
    8. every cart item matches the allow-lists, when any are declared

Each failure raises InvalidCoupon carrying a typed CouponRejection so the
storefront can tell the shopper *why* the code did not work.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from checkout.coupon.coupon import Coupon, CouponType, normalize_code
from checkout.domain import utc_now
from checkout.errors import CouponRejection, InvalidCoupon
from checkout.order.order import Order, OrderStatus
from checkout.pricing.calculator import ZERO, to_money

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartEntry:
    """What the validator needs to know about one cart line."""

    product_id: int
    category_id: int | None
    quantity: int = 1


@dataclass(frozen=True)
class CouponDiscount:
    code: str
    coupon_type: CouponType
    amount: Decimal
    free_shipping: bool = False


def _reject(reason: CouponRejection, message: str):
    return InvalidCoupon(reason, message)


def evaluate_coupon(
    coupon: Coupon | None,
    subtotal: Decimal,
    cart: list[CartEntry],
    completed_order_count: int = 0,
    user_usage_count: int = 0,
    now: datetime | None = None,
) -> CouponDiscount:
    """Apply the eligibility rules to an already-loaded coupon. No side effects."""
    now = now or utc_now()

    if coupon is None:
        raise _reject(CouponRejection.NOT_FOUND, "Coupon not found")
    if not coupon.is_active:
        raise _reject(CouponRejection.INACTIVE, f"Coupon {coupon.code} is no longer active")
    if not coupon.has_started(now):
        raise _reject(CouponRejection.INACTIVE, f"Coupon {coupon.code} is not active yet")
    if coupon.has_expired(now):
        raise _reject(CouponRejection.EXPIRED, f"Coupon {coupon.code} has expired")
    if coupon.is_exhausted():
        raise _reject(CouponRejection.USAGE_EXCEEDED, f"Coupon {coupon.code} has reached its usage limit")
    if coupon.per_user_limit is not None and user_usage_count >= coupon.per_user_limit:
        raise _reject(
            CouponRejection.USAGE_EXCEEDED,
            f"Coupon {coupon.code} can be used {coupon.per_user_limit} time(s) per customer",
        )

    min_order_amount = Decimal(coupon.min_order_amount or 0)
    if subtotal < min_order_amount:
        raise _reject(
            CouponRejection.MINIMUM_NOT_MET,
            f"Minimum order value for {coupon.code} is {to_money(min_order_amount)}",
        )

    if (coupon.new_customer_only or coupon.first_time_only) and completed_order_count > 0:
        raise _reject(CouponRejection.NOT_ELIGIBLE, f"Coupon {coupon.code} is for first-time customers only")

    for entry in cart:
        if coupon.is_excluded(entry.product_id, entry.category_id):
            raise _reject(
                CouponRejection.NOT_APPLICABLE,
                f"Coupon {coupon.code} cannot be used with product {entry.product_id}",
            )
    for entry in cart:
        if not coupon.is_allowed(entry.product_id, entry.category_id):
            raise _reject(
                CouponRejection.NOT_APPLICABLE,
                f"Coupon {coupon.code} does not apply to product {entry.product_id}",
            )

    item_count = sum(entry.quantity for entry in cart)
    if coupon.min_items is not None and item_count < coupon.min_items:
        raise _reject(
            CouponRejection.NOT_APPLICABLE, f"Coupon {coupon.code} requires at least {coupon.min_items} items"
        )
    if coupon.max_items is not None and item_count > coupon.max_items:
        raise _reject(CouponRejection.NOT_APPLICABLE, f"Coupon {coupon.code} allows at most {coupon.max_items} items")

    return CouponDiscount(
        code=coupon.code,
        coupon_type=coupon.type,
        amount=compute_discount(coupon, subtotal),
        free_shipping=coupon.type == CouponType.FREE_SHIPPING,
    )


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Monetary discount for an eligible coupon, capped at ``max_discount``."""
    if coupon.type == CouponType.FIXED:
        discount = to_money(coupon.value)
    elif coupon.type == CouponType.PERCENTAGE:
        discount = to_money(Decimal(subtotal) * Decimal(coupon.value) / 100)
    else:
        # Free shipping is signalled separately; it takes nothing off the goods
        discount = ZERO

    if coupon.max_discount is not None and discount > coupon.max_discount:
        discount = to_money(coupon.max_discount)
    return discount


def count_placed_orders(session: Session, user_id: str) -> int:
    """Orders the user has placed and not cancelled."""
    return session.scalar(
        select(func.count(Order.id)).where(
            Order.user_id == str(user_id),
            Order.status != OrderStatus.CANCELLED.value,
        )
    )


def count_user_coupon_uses(session: Session, user_id: str, code: str) -> int:
    """Orders by the user that carried the code, cancelled ones included."""
    return session.scalar(
        select(func.count(Order.id)).where(
            Order.user_id == str(user_id),
            Order.coupon_code == code,
        )
    )


def coupon_query(code: str, lock: bool = False) -> Select:
    """Select a coupon by code, optionally locking its row until the transaction ends.

    The lock serializes checkouts redeeming the same coupon, so the per-user
    count and the decision based on it cannot interleave. SQLite renders no
    FOR UPDATE; there every write transaction already starts with BEGIN IMMEDIATE.
    """
    query = select(Coupon).where(Coupon.code == normalize_code(code))
    return query.with_for_update() if lock else query


def find_coupon(session: Session, code: str, lock: bool = False) -> Coupon | None:
    return session.scalars(coupon_query(code, lock)).first()


def validate_coupon(
    session: Session,
    code: str,
    subtotal: Decimal,
    cart: list[CartEntry],
    user_id: str,
    now: datetime | None = None,
    lock: bool = False,
) -> CouponDiscount:
    """Load the coupon and the user's history, then evaluate the rules.

    Checkout passes ``lock=True`` so the coupon row stays locked from the
    per-user count until the order commits.
    """
    coupon = find_coupon(session, code, lock)
    try:
        return evaluate_coupon(
            coupon,
            subtotal,
            cart,
            completed_order_count=count_placed_orders(session, user_id),
            user_usage_count=count_user_coupon_uses(session, user_id, normalize_code(code)),
            now=now,
        )
    except InvalidCoupon as exc:
        logger.info("Coupon rejected", coupon_code=code, user_id=str(user_id), reason=exc.reason.value)
        raise


def increment_usage(session: Session, code: str) -> None:
    """Consume one use of the coupon.

    The increment is conditional on the limit in the same statement, so
    concurrent checkouts racing for the last use cannot push ``used_count``
    past ``usage_limit``; the loser is rejected with USAGE_EXCEEDED.
    """
    result = session.execute(
        update(Coupon)
        .where(
            Coupon.code == normalize_code(code),
            (Coupon.usage_limit.is_(None)) | (Coupon.used_count < Coupon.usage_limit),
        )
        .values(used_count=Coupon.used_count + 1, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise _reject(CouponRejection.USAGE_EXCEEDED, f"Coupon {normalize_code(code)} has reached its usage limit")
