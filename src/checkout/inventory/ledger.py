"""Inventory ledger: the only writer of product stock.

Both operations are single conditional UPDATE statements, so the
check-then-decrement is atomic in the database rather than a read followed
by a separate write:

    reserve:  UPDATE products SET stock = stock - :qty WHERE id = :id AND stock >= :qty
    release:  UPDATE products SET stock = stock + :qty WHERE id = :id

A reservation that matches no row means the stock was insufficient (or the
product vanished); nothing is mutated in that case.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from checkout.catalogue.product import Product
from checkout.domain import utc_now
from checkout.errors import InsufficientStock, ProductNotFound

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reservation:
    product_id: int
    quantity: int


class InventoryLedger:
    """Atomic reserve/release of per-product stock within a session's transaction."""

    def __init__(self, session: Session):
        self.session = session

    def reserve(self, product_id: int, quantity: int) -> Reservation:
        """Decrement stock by ``quantity`` only if enough is available."""
        _check_quantity(quantity)

        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("Stock reservation refused", product_id=product_id, requested=quantity)
            raise InsufficientStock(product_id, quantity)

        return Reservation(product_id=product_id, quantity=quantity)

    def release(self, product_id: int, quantity: int) -> None:
        """Return ``quantity`` units to stock unconditionally.

        Callers guarantee a reservation is released at most once.
        """
        _check_quantity(quantity)

        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ProductNotFound(product_id)

    def reserve_all(self, requests: dict[int, int]) -> list[Reservation]:
        """Reserve every (product_id → quantity) request as one all-or-nothing unit.

        Products are reserved in ascending id order so concurrent orders over
        overlapping products always lock rows in the same sequence. When any
        reservation fails, every reservation already taken here is released
        before the failure propagates.
        """
        taken: list[Reservation] = []
        try:
            for product_id in sorted(requests):
                taken.append(self.reserve(product_id, requests[product_id]))
        except InsufficientStock:
            for reservation in reversed(taken):
                self.release(reservation.product_id, reservation.quantity)
            raise
        return taken


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be a positive integer"]})
