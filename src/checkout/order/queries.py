"""Read-only order lookups."""

from protean.exceptions import ValidationError

from checkout.errors import NotOwner
from checkout.order.order import Order, OrderStatus
from checkout.order.repository import OrderRepository
from checkout.utils.db import unit_of_work


def get_order(order_id: int, requester_id: str | None = None) -> Order:
    """Fetch one order; ownership is enforced when ``requester_id`` is given."""
    with unit_of_work() as session:
        order = OrderRepository(session).get(order_id)
        if requester_id is not None and order.user_id != str(requester_id):
            raise NotOwner(order_id)
        return order


def list_orders(user_id: str, status: OrderStatus | str | None = None) -> list[Order]:
    """A user's orders, newest first."""
    if status is not None and not isinstance(status, OrderStatus):
        try:
            status = OrderStatus(status)
        except ValueError:
            raise ValidationError({"status": [f"Unknown order status: {status}"]}) from None
    with unit_of_work() as session:
        return OrderRepository(session).list_for_user(user_id, status)
