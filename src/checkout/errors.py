"""Checkout error taxonomy.

Input errors are raised as protean ``ValidationError`` before any side effect.
Business-rule violations carry a specific, user-facing reason and leave no
partial effect behind. Infrastructure errors (storage unavailable, timeouts)
are not wrapped here; they propagate as raised by SQLAlchemy.

Every error exposes ``messages`` as ``{"field": ["message", ...]}``.
"""

from enum import Enum


class CheckoutError(Exception):
    code = "checkout_error"
    field = "checkout"

    def __init__(self, message: str | None = None, messages: dict | None = None):
        self.messages = messages or {self.field: [message or self.code]}
        super().__init__(message or str(self.messages))


# ---------------------------------------------------------------------------
# Catalogue / inventory
# ---------------------------------------------------------------------------
class ProductNotFound(CheckoutError):
    code = "product_not_found"
    field = "product_id"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class ProductInactive(CheckoutError):
    code = "product_inactive"
    field = "product_id"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not available for sale")


class InsufficientStock(CheckoutError):
    code = "insufficient_stock"
    field = "quantity"

    def __init__(self, product_id, requested: int):
        self.product_id = product_id
        self.requested = requested
        super().__init__(f"Insufficient stock for product {product_id}: {requested} requested")


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
class CouponRejection(Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_EXCEEDED = "usage_exceeded"
    MINIMUM_NOT_MET = "minimum_not_met"
    NOT_ELIGIBLE = "not_eligible"
    NOT_APPLICABLE = "not_applicable"


class InvalidCoupon(CheckoutError):
    code = "invalid_coupon"
    field = "coupon_code"

    def __init__(self, reason: CouponRejection, message: str):
        self.reason = reason
        super().__init__(message)


class CouponNotFound(CheckoutError):
    code = "coupon_not_found"
    field = "coupon_code"

    def __init__(self, code: str):
        self.coupon_code = code
        super().__init__(f"Coupon {code} not found")


class DuplicateCoupon(CheckoutError):
    code = "duplicate_coupon"
    field = "coupon_code"

    def __init__(self, code: str):
        self.coupon_code = code
        super().__init__(f"Coupon code {code} already exists")


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderNotFound(CheckoutError):
    code = "order_not_found"
    field = "order_id"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class NotOwner(CheckoutError):
    code = "not_owner"
    field = "order_id"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} does not belong to the requester")


class InvalidStateTransition(CheckoutError):
    code = "invalid_state_transition"
    field = "status"

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot transition from {current} to {target}")


class AlreadyPaid(CheckoutError):
    code = "already_paid"
    field = "payment_status"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has already been paid")
