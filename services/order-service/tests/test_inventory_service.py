"""Tests for stock reservation and restoration."""
from decimal import Decimal

import pytest

from errors import InsufficientItem, InsufficientStock, NotFound
from models import OrderItem
from services.cart_service import CartLine
from services.inventory_service import InventoryService, coalesce_lines


class TestCoalesceLines:
    def test_duplicate_products_are_summed_in_first_seen_order(self):
        lines = [CartLine(2, 1), CartLine(1, 3), CartLine(2, 4)]

        assert coalesce_lines(lines) == [CartLine(2, 5), CartLine(1, 3)]

    def test_first_known_name_is_kept(self):
        lines = [CartLine(4, 1), CartLine(4, 2, name="Kale")]

        assert coalesce_lines(lines) == [CartLine(4, 3, name="Kale")]

    def test_non_positive_quantity_is_a_programming_error(self):
        with pytest.raises(ValueError):
            coalesce_lines([CartLine(1, 0)])


class TestReserve:
    def test_decrements_stock_and_totals_locked_prices(self, session_factory, make_product, stock_of):
        apples = make_product(name="Apples", price="0.45", stock=20)
        milk = make_product(name="Milk", price="1.19", stock=5)

        with session_factory() as db, db.begin():
            reservation = InventoryService().reserve(
                db, [CartLine(apples, 3), CartLine(milk, 2)]
            )

        assert reservation.total_amount == Decimal("3.73")
        assert [(line.product_id, line.quantity, line.unit_price) for line in reservation.lines] == [
            (apples, 3, Decimal("0.45")),
            (milk, 2, Decimal("1.19")),
        ]
        assert stock_of(apples) == 17
        assert stock_of(milk) == 3

    def test_exact_stock_can_be_reserved(self, session_factory, make_product, stock_of):
        eggs = make_product(name="Eggs", stock=2)

        with session_factory() as db, db.begin():
            InventoryService().reserve(db, [CartLine(eggs, 2)])

        assert stock_of(eggs) == 0

    def test_lists_every_insufficient_line_and_touches_nothing(self, session_factory, make_product, stock_of):
        bread = make_product(name="Bread", stock=1)
        butter = make_product(name="Butter", stock=0)
        jam = make_product(name="Jam", stock=10)

        with session_factory() as db:
            with pytest.raises(InsufficientStock) as exc_info:
                with db.begin():
                    InventoryService().reserve(
                        db, [CartLine(bread, 2), CartLine(jam, 1), CartLine(butter, 1)]
                    )

        assert exc_info.value.items == [
            InsufficientItem(product_id=bread, name="Bread", requested=2, available=1),
            InsufficientItem(product_id=butter, name="Butter", requested=1, available=0),
        ]
        assert stock_of(bread) == 1
        assert stock_of(butter) == 0
        assert stock_of(jam) == 10

    def test_soft_deleted_product_has_nothing_available(self, session_factory, make_product, stock_of):
        discontinued = make_product(name="Discontinued Cereal", stock=50, deleted=True)

        with session_factory() as db:
            with pytest.raises(InsufficientStock) as exc_info:
                with db.begin():
                    InventoryService().reserve(db, [CartLine(discontinued, 1)])

        assert exc_info.value.items == [
            InsufficientItem(product_id=discontinued, name="Discontinued Cereal", requested=1, available=0)
        ]
        assert stock_of(discontinued) == 50

    def test_missing_product_has_nothing_available(self, session_factory):
        with session_factory() as db:
            with pytest.raises(InsufficientStock) as exc_info:
                with db.begin():
                    InventoryService().reserve(db, [CartLine(9999, 4)])

        assert exc_info.value.items == [
            InsufficientItem(product_id=9999, name=None, requested=4, available=0)
        ]

    def test_missing_product_keeps_cart_name(self, session_factory):
        with session_factory() as db:
            with pytest.raises(InsufficientStock) as exc_info:
                with db.begin():
                    InventoryService().reserve(db, [CartLine(9999, 4, name="Ghost Pepper Sauce")])

        assert exc_info.value.items == [
            InsufficientItem(product_id=9999, name="Ghost Pepper Sauce", requested=4, available=0)
        ]

    def test_duplicate_lines_are_checked_against_their_sum(self, session_factory, make_product, stock_of):
        rice = make_product(name="Rice", stock=3)

        with session_factory() as db:
            with pytest.raises(InsufficientStock) as exc_info:
                with db.begin():
                    InventoryService().reserve(db, [CartLine(rice, 2), CartLine(rice, 2)])

        assert exc_info.value.items[0].requested == 4
        assert stock_of(rice) == 3


class TestRestore:
    def test_increments_stock_by_item_quantities(self, session_factory, make_product, stock_of):
        tea = make_product(name="Tea", stock=1)
        soft_deleted = make_product(name="Old Coffee", stock=0, deleted=True)

        with session_factory() as db, db.begin():
            InventoryService().restore(db, [
                OrderItem(product_id=tea, quantity=4, price=Decimal("2.50")),
                OrderItem(product_id=soft_deleted, quantity=2, price=Decimal("3.00")),
            ])

        assert stock_of(tea) == 5
        assert stock_of(soft_deleted) == 2

    def test_missing_product_rolls_back(self, session_factory, make_product, stock_of):
        tea = make_product(name="Tea", stock=1)

        with session_factory() as db:
            with pytest.raises(NotFound):
                with db.begin():
                    InventoryService().restore(db, [
                        OrderItem(product_id=tea, quantity=4, price=Decimal("2.50")),
                        OrderItem(product_id=9999, quantity=1, price=Decimal("1.00")),
                    ])

        assert stock_of(tea) == 1
