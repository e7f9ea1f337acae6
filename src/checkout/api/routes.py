"""FastAPI routes for checkout: orders and coupons.

Each route translates between Pydantic schemas (external contract) and the
checkout commands and services.
"""

from fastapi import APIRouter

from checkout.api.schemas import (
    CancelOrderRequest,
    CouponPreviewResponse,
    CouponResponse,
    CreateCouponRequest,
    CreateOrderRequest,
    OrderResponse,
    PayOrderRequest,
    RecordPaymentRequest,
    RefundRequest,
    TransitionStatusRequest,
    UpdateCouponRequest,
    ValidateCouponRequest,
)
from checkout.coupon.management import (
    CreateCoupon,
    UpdateCoupon,
    create_coupon,
    deactivate_coupon,
    get_coupon,
    list_public_coupons,
    preview_coupon,
    update_coupon,
)
from checkout.order.cancellation import cancel_order
from checkout.order.creation import CreateOrder, create_order
from checkout.order.fulfillment import transition_status
from checkout.order.payment import PaymentOutcome, assert_payable, record_payment_outcome, refund_payment
from checkout.order.queries import get_order, list_orders
from checkout.payment import get_gateway

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: CreateOrderRequest) -> OrderResponse:
    """Place an order: price, reserve stock, apply the coupon, persist."""
    command = CreateOrder(
        user_id=body.user_id,
        items=[item.model_dump() for item in body.items],
        shipping_address=body.shipping_address.model_dump(),
        billing_address=body.billing_address.model_dump(),
        payment_method=body.payment_method,
        shipping_method=body.shipping_method,
        coupon_code=body.coupon_code,
        notes=body.notes,
    )
    return OrderResponse.model_validate(create_order(command))


@order_router.get("", response_model=list[OrderResponse])
async def list_user_orders(user_id: str, status: str | None = None) -> list[OrderResponse]:
    return [OrderResponse.model_validate(order) for order in list_orders(user_id, status)]


@order_router.get("/{order_id}", response_model=OrderResponse)
async def read_order(order_id: int, user_id: str | None = None) -> OrderResponse:
    return OrderResponse.model_validate(get_order(order_id, requester_id=user_id))


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel(order_id: int, body: CancelOrderRequest) -> OrderResponse:
    return OrderResponse.model_validate(cancel_order(order_id, body.user_id, body.reason))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_status(order_id: int, body: TransitionStatusRequest) -> OrderResponse:
    """Staff transition: processing, shipped (with tracking), delivered, etc."""
    metadata = body.model_dump(exclude={"status"}, exclude_none=True)
    return OrderResponse.model_validate(transition_status(order_id, body.status, metadata))


@order_router.post("/{order_id}/payment", response_model=OrderResponse)
async def record_payment(order_id: int, body: RecordPaymentRequest) -> OrderResponse:
    """Record an outcome reported by an external payment flow."""
    order = record_payment_outcome(order_id, body.outcome, body.gateway_reference, body.failure_reason)
    return OrderResponse.model_validate(order)


@order_router.post("/{order_id}/pay", response_model=OrderResponse)
async def pay_order(order_id: int, body: PayOrderRequest) -> OrderResponse:
    """Charge the order total through the gateway and record the outcome.

    1. Check the order can still be paid (never paid, not cancelled or refunded)
    2. Charge through the configured gateway with the caller's idempotency key
    3. Record paid or failed against the order
    """
    order = assert_payable(order_id)
    result = get_gateway().charge(
        order.total_amount,
        order.currency,
        order.payment_method,
        body.details,
        idempotency_key=body.idempotency_key,
    )
    if result.success:
        order = record_payment_outcome(order_id, PaymentOutcome.PAID, result.reference)
    else:
        order = record_payment_outcome(order_id, PaymentOutcome.FAILED, None, result.failure_reason)
    return OrderResponse.model_validate(order)


@order_router.post("/{order_id}/refund", response_model=OrderResponse)
async def refund(order_id: int, body: RefundRequest) -> OrderResponse:
    return OrderResponse.model_validate(refund_payment(order_id, body.amount, body.reason))


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponResponse)
async def add_coupon(body: CreateCouponRequest) -> CouponResponse:
    command = CreateCoupon(**body.model_dump(mode="json", exclude_none=True))
    return CouponResponse.model_validate(create_coupon(command))


@coupon_router.get("", response_model=list[CouponResponse])
async def list_coupons() -> list[CouponResponse]:
    """Active, public coupons that have started and not expired."""
    return [CouponResponse.model_validate(coupon) for coupon in list_public_coupons()]


@coupon_router.post("/validate", response_model=CouponPreviewResponse)
async def validate(body: ValidateCouponRequest) -> CouponPreviewResponse:
    """Preview a coupon against a cart without consuming a use."""
    items: dict[int, int] = {}
    for item in body.items:
        items[item.product_id] = items.get(item.product_id, 0) + item.quantity
    discount = preview_coupon(body.code, body.user_id, items)
    return CouponPreviewResponse(
        code=discount.code,
        coupon_type=discount.coupon_type.value,
        discount=discount.amount,
        free_shipping=discount.free_shipping,
    )


@coupon_router.get("/{code}", response_model=CouponResponse)
async def read_coupon(code: str) -> CouponResponse:
    return CouponResponse.model_validate(get_coupon(code))


@coupon_router.put("/{code}", response_model=CouponResponse)
async def edit_coupon(code: str, body: UpdateCouponRequest) -> CouponResponse:
    command = UpdateCoupon(code=code, **body.model_dump(mode="json", exclude_none=True))
    return CouponResponse.model_validate(update_coupon(command))


@coupon_router.post("/{code}/deactivate", response_model=CouponResponse)
async def deactivate(code: str) -> CouponResponse:
    return CouponResponse.model_validate(deactivate_coupon(code))
