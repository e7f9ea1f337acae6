"""Order cancellation.

Cancellation is only possible while an order is PENDING or CONFIRMED. The
status flip and the inventory release happen in one transaction, and the
flip is a compare-and-swap, so a second (or concurrent) cancellation finds
the order already CANCELLED and releases nothing.
"""

import structlog
from sqlalchemy.orm import Session

from checkout.domain import utc_now
from checkout.errors import NotOwner
from checkout.inventory.ledger import InventoryLedger
from checkout.notification import notify
from checkout.order.events import OrderCancelled
from checkout.order.order import CANCELLABLE_STATES, Order, OrderStatus
from checkout.order.repository import OrderRepository
from checkout.utils.db import unit_of_work

logger = structlog.get_logger(__name__)


def apply_cancellation(session: Session, order: Order, reason: str | None = None) -> OrderCancelled:
    """Cancel ``order`` inside the caller's transaction and restore its stock."""
    order.assert_can_transition(OrderStatus.CANCELLED)

    cancelled_at = utc_now()
    OrderRepository(session).swap_status(
        order,
        OrderStatus.CANCELLED,
        expected=CANCELLABLE_STATES,
        cancellation_reason=reason,
        cancelled_at=cancelled_at,
    )

    ledger = InventoryLedger(session)
    for item in order.items:
        ledger.release(item.product_id, item.quantity)

    return OrderCancelled(
        order_id=str(order.id),
        order_number=order.order_number,
        user_id=order.user_id,
        reason=reason,
        cancelled_at=cancelled_at,
    )


def cancel_order(order_id: int, requester_id: str, reason: str | None = None) -> Order:
    """Cancel an order on behalf of its owner."""
    with unit_of_work() as session:
        order = OrderRepository(session).get(order_id)
        if order.user_id != str(requester_id):
            raise NotOwner(order_id)
        event = apply_cancellation(session, order, reason)

    logger.info("Order cancelled", order_id=order.id, order_number=order.order_number, reason=reason)
    notify(event)
    return order
