"""Coupon administration: creation, update, lookup, listing, deactivation and preview."""

from datetime import datetime
from decimal import Decimal

import structlog
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Integer, List, String, Text
from sqlalchemy import select

from checkout.catalogue.product import load_products_for_checkout
from checkout.coupon.coupon import Coupon, CouponType, normalize_code
from checkout.coupon.validation import CartEntry, CouponDiscount, find_coupon, validate_coupon
from checkout.domain import as_utc, checkout, utc_now
from checkout.errors import CouponNotFound, DuplicateCoupon
from checkout.pricing.calculator import PricedLine, as_decimal, calculate_pricing, to_money
from checkout.streams import CouponStream
from checkout.utils.db import unit_of_work

logger = structlog.get_logger(__name__)

MONEY_FIELDS = ("value", "min_order_amount", "max_discount")
LIST_FIELDS = ("applicable_products", "excluded_products", "applicable_categories", "excluded_categories")
UPDATABLE_FIELDS = (
    *MONEY_FIELDS,
    "usage_limit",
    "per_user_limit",
    "is_active",
    "is_public",
    "description",
    "starts_at",
    "expires_at",
    *LIST_FIELDS,
    "min_items",
    "max_items",
    "first_time_only",
    "new_customer_only",
)


@checkout.command(part_of=CouponStream)
class CreateCoupon:
    code = String(required=True, max_length=20)
    coupon_type = String(required=True, max_length=20)
    value = Float(required=True, min_value=0.0)
    min_order_amount = Float(min_value=0.0, default=0.0)
    max_discount = Float(min_value=0.0)
    usage_limit = Integer(min_value=0)
    per_user_limit = Integer(min_value=0, default=1)
    is_active = Boolean(default=True)
    is_public = Boolean(default=True)
    description = Text()
    starts_at = DateTime()
    expires_at = DateTime()
    applicable_products = List(content_type=Integer)
    excluded_products = List(content_type=Integer)
    applicable_categories = List(content_type=Integer)
    excluded_categories = List(content_type=Integer)
    min_items = Integer(min_value=0)
    max_items = Integer(min_value=0)
    first_time_only = Boolean(default=False)
    new_customer_only = Boolean(default=False)


@checkout.command(part_of=CouponStream)
class UpdateCoupon:
    """Partial update: only the fields that are given change."""

    code = String(required=True, max_length=20)
    value = Float(min_value=0.0)
    min_order_amount = Float(min_value=0.0)
    max_discount = Float(min_value=0.0)
    usage_limit = Integer(min_value=0)
    per_user_limit = Integer(min_value=0)
    is_active = Boolean()
    is_public = Boolean()
    description = Text()
    starts_at = DateTime()
    expires_at = DateTime()
    applicable_products = List(content_type=Integer)
    excluded_products = List(content_type=Integer)
    applicable_categories = List(content_type=Integer)
    excluded_categories = List(content_type=Integer)
    min_items = Integer(min_value=0)
    max_items = Integer(min_value=0)
    first_time_only = Boolean()
    new_customer_only = Boolean()


def _parse_type(value: str) -> CouponType:
    try:
        return CouponType(value)
    except ValueError:
        raise ValidationError({"coupon_type": [f"Unknown coupon type: {value}"]}) from None


def _check_rules(coupon: Coupon) -> None:
    """Rules spanning several fields, checked on the values about to be stored."""
    errors: dict[str, list[str]] = {}

    if not coupon.code:
        errors.setdefault("code", []).append("Coupon code is required")
    if coupon.type == CouponType.PERCENTAGE and coupon.value > 100:
        errors.setdefault("value", []).append("Percentage discount cannot exceed 100")
    if coupon.min_items is not None and coupon.max_items is not None and coupon.min_items > coupon.max_items:
        errors.setdefault("max_items", []).append("max_items must not be smaller than min_items")
    if coupon.starts_at and coupon.expires_at and as_utc(coupon.expires_at) <= as_utc(coupon.starts_at):
        errors.setdefault("expires_at", []).append("Expiry must be after the start date")
    if coupon.usage_limit is not None and coupon.usage_limit < (coupon.used_count or 0):
        errors.setdefault("usage_limit", []).append(
            f"Usage limit cannot be lower than the {coupon.used_count} use(s) already made"
        )

    if errors:
        raise ValidationError(errors)


def _money(value) -> Decimal | None:
    return None if value is None else to_money(as_decimal(value))


def create_coupon(command: CreateCoupon) -> Coupon:
    code = normalize_code(command.code)
    coupon = Coupon(
        code=code,
        coupon_type=_parse_type(command.coupon_type).value,
        value=_money(command.value),
        min_order_amount=_money(command.min_order_amount or 0),
        max_discount=_money(command.max_discount),
        usage_limit=command.usage_limit,
        per_user_limit=command.per_user_limit,
        used_count=0,
        is_active=command.is_active,
        is_public=command.is_public,
        description=command.description,
        starts_at=command.starts_at,
        expires_at=command.expires_at,
        applicable_products=list(command.applicable_products or []),
        excluded_products=list(command.excluded_products or []),
        applicable_categories=list(command.applicable_categories or []),
        excluded_categories=list(command.excluded_categories or []),
        min_items=command.min_items,
        max_items=command.max_items,
        first_time_only=command.first_time_only,
        new_customer_only=command.new_customer_only,
    )
    _check_rules(coupon)

    with unit_of_work() as session:
        if find_coupon(session, code) is not None:
            raise DuplicateCoupon(code)
        session.add(coupon)
        session.flush()

    logger.info("Coupon created", coupon_code=coupon.code, coupon_type=coupon.coupon_type)
    return coupon


def update_coupon(command: UpdateCoupon) -> Coupon:
    """Change the given fields of an existing coupon. The code and type are fixed.

    Every rule checked at creation is checked again on the updated values,
    and the usage limit cannot drop below the uses already made.
    """
    changed = []
    with unit_of_work() as session:
        coupon = find_coupon(session, command.code)
        if coupon is None:
            raise CouponNotFound(normalize_code(command.code))

        for name in UPDATABLE_FIELDS:
            value = getattr(command, name)
            # An empty list leaves the stored list as it is
            if value is None or (name in LIST_FIELDS and not value):
                continue
            if name in MONEY_FIELDS:
                value = _money(value)
            elif name in LIST_FIELDS:
                value = list(value)
            setattr(coupon, name, value)
            changed.append(name)

        _check_rules(coupon)

    logger.info("Coupon updated", coupon_code=coupon.code, fields=changed)
    return coupon


def get_coupon(code: str) -> Coupon:
    with unit_of_work() as session:
        coupon = find_coupon(session, code)
        if coupon is None:
            raise CouponNotFound(normalize_code(code))
        return coupon


def list_public_coupons(now: datetime | None = None) -> list[Coupon]:
    """Coupons a storefront may advertise: active, public, started and not expired."""
    now = now or utc_now()
    with unit_of_work() as session:
        coupons = session.scalars(
            select(Coupon)
            .where(Coupon.is_active.is_(True), Coupon.is_public.is_(True))
            .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        ).all()
        return [coupon for coupon in coupons if coupon.has_started(now) and not coupon.has_expired(now)]


def deactivate_coupon(code: str) -> Coupon:
    with unit_of_work() as session:
        coupon = find_coupon(session, code)
        if coupon is None:
            raise CouponNotFound(normalize_code(code))
        coupon.is_active = False

    logger.info("Coupon deactivated", coupon_code=coupon.code)
    return coupon


def preview_coupon(code: str, user_id: str, items: dict[int, int]) -> CouponDiscount:
    """Check a coupon against a prospective cart without consuming a use.

    ``items`` maps product id to quantity. Raises InvalidCoupon with the
    rejection reason when the coupon would not apply.
    """
    with unit_of_work() as session:
        products = load_products_for_checkout(session, items)
        lines = [
            PricedLine(
                product_id=product_id,
                unit_price=products[product_id].unit_price,
                quantity=quantity,
                discount_percent=products[product_id].discount_percent,
            )
            for product_id, quantity in sorted(items.items())
        ]
        subtotal = calculate_pricing(lines).subtotal
        cart = [
            CartEntry(
                product_id=line.product_id,
                category_id=products[line.product_id].category_id,
                quantity=line.quantity,
            )
            for line in lines
        ]
        return validate_coupon(session, code, subtotal, cart, user_id)
