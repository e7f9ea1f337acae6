"""Order and OrderItem: the immutable, priced outcome of a checkout.

An order is created once, atomically, together with all of its items. After
creation only the status/payment-status fields and shipment metadata change;
monetary fields and items never do.

Two independent state machines:

Status:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED
    CANCELLED from PENDING or CONFIRMED only
    REFUNDED from any post-payment state (CONFIRMED onwards, or CANCELLED)

Payment status:
    PENDING → PAID | FAILED
    FAILED  → PAID | FAILED   (retry)
    PAID    → REFUNDED | PARTIALLY_REFUNDED
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from checkout.domain import Base, utc_now
from checkout.errors import InvalidStateTransition


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


# State machine transition maps
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),  # Terminal
}

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.PARTIALLY_REFUNDED: set(),
}

# States from which cancellation is allowed
CANCELLABLE_STATES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Payment states in which money has been captured
SETTLED_PAYMENT_STATES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}
)


def allowed_status_transitions(current: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(current, set()))


def allowed_payment_transitions(current: PaymentStatus) -> set[PaymentStatus]:
    return set(_VALID_PAYMENT_TRANSITIONS.get(current, set()))


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
class OrderItem(Base):
    """Snapshot of a purchased product at the time of checkout.

    Decoupled from the live product: later catalogue price or name changes
    never alter a historical order.

        total_price     = unit_price × quantity
        discount_amount = total_price × discount_percent / 100
        final_price     = total_price − discount_amount
    """

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_order_items_discount_percent_range",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    final_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    order: Mapped["Order"] = relationship(back_populates="items")

    @classmethod
    def from_priced_line(cls, line, product_name: str) -> "OrderItem":
        """Freeze a priced cart line into an order item."""
        return cls(
            product_id=line.product_id,
            product_name=product_name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            total_price=line.line_total,
            discount_percent=line.discount_percent,
            discount_amount=line.discount_amount,
            final_price=line.final_price,
        )


# ---------------------------------------------------------------------------
# Aggregate root
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("subtotal >= 0", name="ck_orders_subtotal_non_negative"),
        CheckConstraint("tax_amount >= 0", name="ck_orders_tax_non_negative"),
        CheckConstraint("shipping_amount >= 0", name="ck_orders_shipping_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    coupon_discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255))
    shipping_method: Mapped[str] = mapped_column(String(100), nullable=False)
    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    billing_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    coupon_code: Mapped[str | None] = mapped_column(String(20))
    notes: Mapped[str | None] = mapped_column(Text)

    tracking_number: Mapped[str | None] = mapped_column(String(100))
    carrier: Mapped[str | None] = mapped_column(String(100))
    estimated_delivery: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(String(500))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=OrderItem.id,
    )

    def __repr__(self):
        return f"<Order {self.order_number} {self.status}/{self.payment_status}>"

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def current_payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.payment_status)

    @property
    def is_cancellable(self) -> bool:
        return self.order_status in CANCELLABLE_STATES

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def assert_can_transition(self, target: OrderStatus) -> None:
        """Validate that the current status allows a move to ``target``."""
        current = self.order_status
        if target == OrderStatus.CANCELLED and current not in CANCELLABLE_STATES:
            raise InvalidStateTransition(
                current.value,
                target.value,
                f"Cannot cancel order in {current.value} state. "
                f"Cancellation is only allowed from: "
                f"{', '.join(sorted(s.value for s in CANCELLABLE_STATES))}",
            )
        if target not in allowed_status_transitions(current):
            raise InvalidStateTransition(current.value, target.value)
        if target == OrderStatus.REFUNDED and self.current_payment_status not in SETTLED_PAYMENT_STATES:
            raise InvalidStateTransition(
                current.value,
                target.value,
                "Only orders with a captured payment can be refunded",
            )

    def assert_can_record_payment(self, target: PaymentStatus) -> None:
        current = self.current_payment_status
        if target not in allowed_payment_transitions(current):
            raise InvalidStateTransition(current.value, target.value)

    def verify_totals(self) -> bool:
        """total = subtotal + tax + shipping − discount, to the cent."""
        expected = self.subtotal + self.tax_amount + self.shipping_amount - self.discount_amount
        return Decimal(self.total_amount) == Decimal(expected)
