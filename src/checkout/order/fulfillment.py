"""Order status transitions driven by staff and fulfilment systems."""

import structlog
from protean.exceptions import ValidationError

from checkout.config import CheckoutSettings, get_settings
from checkout.domain import utc_now
from checkout.notification import notify
from checkout.order.cancellation import apply_cancellation
from checkout.order.events import OrderDelivered, OrderShipped
from checkout.order.numbering import generate_tracking_number
from checkout.order.order import Order, OrderStatus
from checkout.order.repository import OrderRepository
from checkout.utils.db import unit_of_work

logger = structlog.get_logger(__name__)


def _parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status: {value}"]}) from None


def transition_status(
    order_id: int,
    new_status: OrderStatus | str,
    metadata: dict | None = None,
    settings: CheckoutSettings | None = None,
) -> Order:
    """Move an order along its lifecycle.

    ``metadata`` may carry ``tracking_number`` and ``carrier`` for SHIPPED
    and ``reason`` for CANCELLED. Moving to CANCELLED also restores stock.
    """
    target = _parse_status(new_status)
    metadata = metadata or {}
    settings = settings or get_settings()
    event = None

    with unit_of_work() as session:
        repository = OrderRepository(session)
        order = repository.get(order_id)
        previous = order.status

        if target == OrderStatus.CANCELLED:
            event = apply_cancellation(session, order, metadata.get("reason"))
        else:
            order.assert_can_transition(target)
            changes = {}
            now = utc_now()
            if target == OrderStatus.SHIPPED:
                changes = {
                    "tracking_number": metadata.get("tracking_number") or generate_tracking_number(),
                    "carrier": metadata.get("carrier"),
                    "estimated_delivery": now + settings.delivery_lead_time,
                }
            elif target == OrderStatus.DELIVERED:
                changes = {"delivered_at": now}

            repository.swap_status(order, target, **changes)

            if target == OrderStatus.SHIPPED:
                event = OrderShipped(
                    order_id=str(order.id),
                    order_number=order.order_number,
                    user_id=order.user_id,
                    tracking_number=order.tracking_number,
                    carrier=order.carrier,
                    estimated_delivery=order.estimated_delivery,
                    shipped_at=now,
                )
            elif target == OrderStatus.DELIVERED:
                event = OrderDelivered(
                    order_id=str(order.id),
                    order_number=order.order_number,
                    user_id=order.user_id,
                    delivered_at=now,
                )

    logger.info(
        "Order status changed",
        order_id=order.id,
        order_number=order.order_number,
        from_status=previous,
        to_status=target.value,
    )
    if event is not None:
        notify(event)
    return order
