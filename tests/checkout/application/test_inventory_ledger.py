"""Application tests for atomic stock reservation and release."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from protean.exceptions import ValidationError
from sqlalchemy import select

from checkout.catalogue.product import Product
from checkout.errors import InsufficientStock, ProductNotFound
from checkout.inventory.ledger import InventoryLedger, Reservation
from checkout.utils.db import unit_of_work


def _stock(session, product_id):
    return session.scalar(select(Product.stock).where(Product.id == product_id))


class TestReserve:
    def test_reserve_decrements_stock(self, make_product, stock_of):
        product_id = make_product(stock=5)

        with unit_of_work() as session:
            reservation = InventoryLedger(session).reserve(product_id, 3)

        assert reservation == Reservation(product_id=product_id, quantity=3)
        assert stock_of(product_id) == 2

    def test_reserve_exact_stock(self, make_product, stock_of):
        product_id = make_product(stock=2)

        with unit_of_work() as session:
            InventoryLedger(session).reserve(product_id, 2)

        assert stock_of(product_id) == 0

    def test_insufficient_stock_leaves_stock_unchanged(self, make_product, stock_of):
        product_id = make_product(stock=2)

        with pytest.raises(InsufficientStock) as exc:
            with unit_of_work() as session:
                InventoryLedger(session).reserve(product_id, 3)

        assert exc.value.product_id == product_id
        assert exc.value.requested == 3
        assert stock_of(product_id) == 2

    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
    def test_rejects_invalid_quantity(self, make_product, quantity):
        product_id = make_product(stock=5)

        with pytest.raises(ValidationError):
            with unit_of_work() as session:
                InventoryLedger(session).reserve(product_id, quantity)


class TestRelease:
    def test_release_increments_stock(self, make_product, stock_of):
        product_id = make_product(stock=1)

        with unit_of_work() as session:
            InventoryLedger(session).release(product_id, 4)

        assert stock_of(product_id) == 5

    def test_release_unknown_product(self):
        with pytest.raises(ProductNotFound):
            with unit_of_work() as session:
                InventoryLedger(session).release(999, 1)


class TestReserveAll:
    def test_reserves_every_line(self, make_product, stock_of):
        first = make_product(stock=5)
        second = make_product(name="Gadget", stock=5)

        with unit_of_work() as session:
            reservations = InventoryLedger(session).reserve_all({second: 1, first: 2})

        assert [r.product_id for r in reservations] == [first, second]
        assert stock_of(first) == 3
        assert stock_of(second) == 4

    def test_failure_releases_earlier_reservations(self, make_product):
        first = make_product(stock=5)
        second = make_product(name="Gadget", stock=1)

        with unit_of_work() as session:
            with pytest.raises(InsufficientStock) as exc:
                InventoryLedger(session).reserve_all({first: 2, second: 2})

            assert exc.value.product_id == second
            assert _stock(session, first) == 5
            assert _stock(session, second) == 1


class TestConcurrentReservations:
    def test_stock_never_goes_negative(self, make_product, stock_of):
        product_id = make_product(stock=5)

        def _attempt(_):
            try:
                with unit_of_work() as session:
                    InventoryLedger(session).reserve(product_id, 1)
                return True
            except InsufficientStock:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(_attempt, range(12)))

        assert outcomes.count(True) == 5
        assert stock_of(product_id) == 0

    def test_final_stock_accounts_for_every_success(self, make_product, stock_of):
        product_id = make_product(stock=10)
        quantities = [3, 4, 2, 5, 1, 3]

        def _attempt(quantity):
            try:
                with unit_of_work() as session:
                    InventoryLedger(session).reserve(product_id, quantity)
                return quantity
            except InsufficientStock:
                return 0

        with ThreadPoolExecutor(max_workers=6) as pool:
            reserved = sum(pool.map(_attempt, quantities))

        assert reserved <= 10
        assert stock_of(product_id) == 10 - reserved
