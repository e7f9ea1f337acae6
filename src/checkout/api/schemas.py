"""Pydantic request/response schemas for the checkout API.

These are external contracts, kept separate from the internal commands
and SQLAlchemy models.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str


class LineItemSchema(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    user_id: str
    items: list[LineItemSchema] = Field(min_length=1)
    shipping_address: AddressSchema
    billing_address: AddressSchema
    payment_method: str
    shipping_method: str = "standard"
    coupon_code: str | None = None
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "items": [{"product_id": 1, "quantity": 2}],
                    "shipping_address": {
                        "street": "123 Main St",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "billing_address": {
                        "street": "123 Main St",
                        "city": "Springfield",
                        "state": "IL",
                        "postal_code": "62701",
                        "country": "US",
                    },
                    "payment_method": "credit_card",
                    "shipping_method": "standard",
                    "coupon_code": "SAVE10",
                }
            ]
        }
    }


class CancelOrderRequest(BaseModel):
    user_id: str
    reason: str | None = None


class TransitionStatusRequest(BaseModel):
    status: str
    tracking_number: str | None = None
    carrier: str | None = None
    reason: str | None = None


class RecordPaymentRequest(BaseModel):
    outcome: str
    gateway_reference: str | None = None
    failure_reason: str | None = None


class PayOrderRequest(BaseModel):
    idempotency_key: str = Field(min_length=1, max_length=255)
    details: dict = Field(default_factory=dict)


class RefundRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    reason: str | None = None


# ---------------------------------------------------------------------------
# Coupon requests
# ---------------------------------------------------------------------------
class CreateCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    coupon_type: str
    value: Decimal = Field(ge=0)
    min_order_amount: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    per_user_limit: int | None = Field(default=1, ge=0)
    is_active: bool = True
    is_public: bool = True
    description: str | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    applicable_products: list[int] = Field(default_factory=list)
    excluded_products: list[int] = Field(default_factory=list)
    applicable_categories: list[int] = Field(default_factory=list)
    excluded_categories: list[int] = Field(default_factory=list)
    min_items: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0)
    first_time_only: bool = False
    new_customer_only: bool = False


class UpdateCouponRequest(BaseModel):
    """Fields left out keep their stored value."""

    value: Decimal | None = Field(default=None, ge=0)
    min_order_amount: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    per_user_limit: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    is_public: bool | None = None
    description: str | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    applicable_products: list[int] | None = None
    excluded_products: list[int] | None = None
    applicable_categories: list[int] | None = None
    excluded_categories: list[int] | None = None
    min_items: int | None = Field(default=None, ge=0)
    max_items: int | None = Field(default=None, ge=0)
    first_time_only: bool | None = None
    new_customer_only: bool | None = None


class ValidateCouponRequest(BaseModel):
    code: str
    user_id: str
    items: list[LineItemSchema] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    final_price: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: str
    status: str
    payment_status: str
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    coupon_discount: Decimal
    total_amount: Decimal
    refunded_amount: Decimal
    currency: str
    payment_method: str
    payment_reference: str | None = None
    shipping_method: str
    shipping_address: dict
    billing_address: dict
    coupon_code: str | None = None
    notes: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    items: list[OrderItemResponse]


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    coupon_type: str
    value: Decimal
    min_order_amount: Decimal
    max_discount: Decimal | None = None
    usage_limit: int | None = None
    per_user_limit: int | None = None
    used_count: int
    is_active: bool
    is_public: bool
    description: str | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None


class CouponPreviewResponse(BaseModel):
    code: str
    coupon_type: str
    discount: Decimal
    free_shipping: bool


class ErrorResponse(BaseModel):
    error: str
    detail: str
    messages: dict
    reason: str | None = None
