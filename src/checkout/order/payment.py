"""Recording payment outcomes and refunds against an order.

The gateway is never called from here: the payment route asks
``assert_payable`` first, charges the card, and reports the outcome. A
successful payment on a PENDING order also confirms the order.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum

import structlog
from protean.exceptions import ValidationError

from checkout.errors import AlreadyPaid, InvalidStateTransition
from checkout.order.order import SETTLED_PAYMENT_STATES, Order, OrderStatus, PaymentStatus
from checkout.order.repository import OrderRepository
from checkout.pricing.calculator import as_decimal, to_money
from checkout.utils.db import unit_of_work

logger = structlog.get_logger(__name__)

# Orders in these states no longer accept payments
_CLOSED_STATES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})


class PaymentOutcome(Enum):
    PAID = "paid"
    FAILED = "failed"


def _check_payable(order: Order, target: PaymentStatus = PaymentStatus.PAID) -> None:
    if order.current_payment_status in SETTLED_PAYMENT_STATES:
        raise AlreadyPaid(order.id)
    if order.order_status in _CLOSED_STATES:
        raise InvalidStateTransition(
            order.status, target.value, f"Cannot record a payment on a {order.status} order"
        )
    order.assert_can_record_payment(target)


def assert_payable(order_id: int) -> Order:
    """Load an order that may still be charged, before any money moves.

    Raises AlreadyPaid once the payment is settled and InvalidStateTransition
    for cancelled or refunded orders.
    """
    with unit_of_work() as session:
        order = OrderRepository(session).get(order_id)
        _check_payable(order)
        return order


def record_payment_outcome(
    order_id: int,
    outcome: PaymentOutcome | str,
    gateway_reference: str | None = None,
    failure_reason: str | None = None,
) -> Order:
    try:
        outcome = PaymentOutcome(outcome)
    except ValueError:
        raise ValidationError({"outcome": [f"Unknown payment outcome: {outcome}"]}) from None
    if outcome == PaymentOutcome.PAID and not gateway_reference:
        raise ValidationError({"gateway_reference": ["Gateway reference is required for a paid outcome"]})

    target = PaymentStatus(outcome.value)

    with unit_of_work() as session:
        repository = OrderRepository(session)
        order = repository.get(order_id)

        _check_payable(order, target)

        repository.swap_payment_status(
            order,
            target,
            expected={PaymentStatus.PENDING, PaymentStatus.FAILED},
            payment_reference=gateway_reference or order.payment_reference,
        )
        if target == PaymentStatus.PAID and order.order_status == OrderStatus.PENDING:
            repository.swap_status(order, OrderStatus.CONFIRMED)

    if target == PaymentStatus.PAID:
        logger.info("Payment recorded", order_id=order.id, order_number=order.order_number, reference=gateway_reference)
    else:
        logger.warning(
            "Payment failed", order_id=order.id, order_number=order.order_number, failure_reason=failure_reason
        )
    return order


def refund_payment(order_id: int, amount: Decimal | str | None = None, reason: str | None = None) -> Order:
    """Refund a paid order, fully (``amount`` omitted or equal to the total) or partially."""
    with unit_of_work() as session:
        repository = OrderRepository(session)
        order = repository.get(order_id)

        total = to_money(order.total_amount)
        try:
            refund = total if amount is None else to_money(as_decimal(amount))
        except InvalidOperation:
            raise ValidationError({"amount": [f"Invalid refund amount: {amount}"]}) from None
        if refund <= 0 or refund > total:
            raise ValidationError({"amount": [f"Refund amount must be between 0.01 and {total}"]})
        if order.current_payment_status != PaymentStatus.PAID:
            raise InvalidStateTransition(
                order.payment_status,
                PaymentStatus.REFUNDED.value,
                f"Cannot refund an order whose payment is {order.payment_status}",
            )

        if refund == total:
            repository.swap_payment_status(
                order, PaymentStatus.REFUNDED, expected={PaymentStatus.PAID}, refunded_amount=refund
            )
            if order.order_status != OrderStatus.REFUNDED:
                order.assert_can_transition(OrderStatus.REFUNDED)
                repository.swap_status(order, OrderStatus.REFUNDED)
        else:
            repository.swap_payment_status(
                order, PaymentStatus.PARTIALLY_REFUNDED, expected={PaymentStatus.PAID}, refunded_amount=refund
            )

    logger.info(
        "Payment refunded",
        order_id=order.id,
        order_number=order.order_number,
        amount=str(refund),
        reason=reason,
    )
    return order
