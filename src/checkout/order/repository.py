"""Repository for the Order aggregate.

Status and payment-status changes are compare-and-swap updates: the new
value is written only if the stored value is still one of the expected
ones, in the same statement. Two concurrent cancellations of one order
therefore cannot both succeed, and inventory is released at most once.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from checkout.domain import utc_now
from checkout.errors import InvalidStateTransition, OrderNotFound
from checkout.order.order import Order, OrderStatus, PaymentStatus


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def get(self, order_id) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def order_number_exists(self, order_number: str) -> bool:
        return self.session.scalar(select(Order.id).where(Order.order_number == order_number)) is not None

    def list_for_user(self, user_id: str, status: OrderStatus | None = None) -> list[Order]:
        query = select(Order).where(Order.user_id == str(user_id))
        if status is not None:
            query = query.where(Order.status == status.value)
        return list(self.session.scalars(query.order_by(Order.created_at.desc(), Order.id.desc())).all())

    def swap_status(
        self,
        order: Order,
        target: OrderStatus,
        expected: set[OrderStatus] | frozenset[OrderStatus] | None = None,
        **changes,
    ) -> datetime:
        """Move ``order`` to ``target`` only if its stored status is still expected."""
        expected = expected or {order.order_status}
        return self._swap(order, Order.status, "status", target.value, {s.value for s in expected}, changes)

    def swap_payment_status(
        self,
        order: Order,
        target: PaymentStatus,
        expected: set[PaymentStatus] | None = None,
        **changes,
    ) -> datetime:
        """Move the payment status to ``target`` only if the stored value is still expected."""
        expected = expected or {order.current_payment_status}
        return self._swap(
            order, Order.payment_status, "payment_status", target.value, {s.value for s in expected}, changes
        )

    def _swap(self, order, column, attribute, target, expected, changes) -> datetime:
        now = utc_now()
        values = {attribute: target, "updated_at": now, **changes}

        result = self.session.execute(
            update(Order)
            .where(Order.id == order.id, column.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.scalar(select(column).where(Order.id == order.id))
            if current is None:
                raise OrderNotFound(order.id)
            raise InvalidStateTransition(current, target, f"Order changed concurrently: now {current}, wanted {target}")

        # Mirror the stored values without marking the instance dirty
        for key, value in values.items():
            set_committed_value(order, key, value)
        return now
