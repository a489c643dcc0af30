# Overview: Pytest coverage for manual adjustments, ledger queries and reconciliation.

import pytest
from sqlalchemy import update

from shopstock.errors import InsufficientStock, NotFound, StockValidationError
from shopstock.extensions import db
from shopstock.models import Product, ProductShop
from shopstock.services import inventory_service, ledger_store

from conftest import reload


class TestAdjustStock:

    def test_sign_selects_movement_type(self, make_product, stock_keeper):
        product = make_product(stock=10)

        added = inventory_service.adjust_stock(product.id, 7, "Found in back room", stock_keeper.id)
        removed = inventory_service.adjust_stock(product.id, -4, "Broken", stock_keeper.id)

        assert (added.movement.type, added.movement.quantity) == ("in", 7)
        assert (removed.movement.type, removed.movement.quantity) == ("out", 4)
        assert reload(product).stock == 13

    def test_reason_is_recorded_verbatim(self, make_product, stock_keeper):
        product = make_product(stock=10)
        change = inventory_service.adjust_stock(product.id, 1, "  Recount aisle 4 ", stock_keeper.id)
        assert change.movement.reason == "  Recount aisle 4 "

    def test_over_removal_rejected(self, make_product, stock_keeper):
        product = make_product(stock=3)
        with pytest.raises(InsufficientStock):
            inventory_service.adjust_stock(product.id, -4, "Shrinkage", stock_keeper.id)
        assert reload(product).stock == 3

    def test_unknown_shop_rejected(self, make_product, stock_keeper):
        product = make_product(stock=3)
        with pytest.raises(NotFound):
            inventory_service.adjust_stock(product.id, 5, "Restock", stock_keeper.id, shop_id=9999)

        assert reload(product).stock == 3
        assert inventory_service.list_stock_movements(shop_id=9999) == []

    def test_zero_rejected(self, make_product, stock_keeper):
        product = make_product(stock=3)
        with pytest.raises(StockValidationError):
            inventory_service.adjust_stock(product.id, 0, "Nothing", stock_keeper.id)


class TestQueries:

    def test_movements_newest_first_with_filters(self, make_product, stock_keeper, shop):
        a = make_product(stock=5)
        b = make_product(stock=5)
        inventory_service.adjust_stock(a.id, 1, "One", stock_keeper.id)
        inventory_service.adjust_stock(a.id, 2, "Two", stock_keeper.id, shop_id=shop.id)
        inventory_service.adjust_stock(b.id, 3, "Three", stock_keeper.id)

        for_a = inventory_service.list_stock_movements(product_id=a.id)
        assert [m.reason for m in for_a] == ["Two", "One", "Initial stock"]

        for_shop = inventory_service.list_stock_movements(shop_id=shop.id)
        assert [m.reason for m in for_shop] == ["Two"]

        assert len(inventory_service.list_stock_movements(limit=2)) == 2

    def test_low_stock_products(self, db_session, make_product, shop):
        low = make_product(stock=2, min_stock=5)
        edge = make_product(stock=5, min_stock=5)
        make_product(stock=50, min_stock=5)

        assert {p.id for p in inventory_service.list_low_stock_products()} == {low.id, edge.id}

        db_session.add(ProductShop(product_id=edge.id, shop_id=shop.id))
        db_session.commit()
        assert [p.id for p in inventory_service.list_low_stock_products(shop_id=shop.id)] == [edge.id]

    def test_inactive_products_are_not_reported_low(self, db_session, make_product):
        product = make_product(stock=0)
        product.is_active = False
        db_session.commit()

        assert inventory_service.list_low_stock_products() == []

    def test_invalid_filter_field(self, db_session):
        with pytest.raises(ValueError):
            ledger_store.find_movements({"reason": "x"})


class TestReconcile:

    def test_clean_history_is_consistent(self, make_product, stock_keeper, cashier):
        product = make_product(stock=10, min_stock=5)
        inventory_service.adjust_stock(product.id, 5, "Delivery", stock_keeper.id)
        inventory_service.adjust_stock(product.id, -12, "Shrinkage", stock_keeper.id)

        report = inventory_service.reconcile_product(product.id)

        assert report["is_consistent"] is True
        assert report["movement_count"] == 3
        assert report["opening_balance"] == 0
        assert report["stock"] == 3

    def test_detects_counter_written_outside_ledger(self, db_session, make_product):
        product = make_product(stock=10, min_stock=5)
        db_session.execute(update(Product).where(Product.id == product.id).values(stock=4))
        db_session.commit()

        report = inventory_service.reconcile_product(product.id)

        assert report["is_consistent"] is False
        assert report["final_mismatch"] == {"ledger_stock": 10, "stock": 4}
        drifted = {d["field"] for d in report["mirror_drift"]}
        assert {"main_stock_quantity", "main_stock_low", "low_stock"} <= drifted

    def test_detects_chain_break_and_bad_arithmetic(self, db_session, make_product, stock_keeper):
        product = make_product(stock=10)
        ledger_store.insert_stock_movement(
            product_id=product.id,
            movement_type="in",
            quantity=3,
            reason="Hand-written",
            user_id=stock_keeper.id,
            previous_stock=12,
            new_stock=14,
        )
        db_session.commit()

        report = inventory_service.reconcile_product(product.id)

        assert len(report["chain_breaks"]) == 1
        assert report["chain_breaks"][0]["expected_previous_stock"] == 10
        assert len(report["arithmetic_violations"]) == 1
        assert report["final_mismatch"] == {"ledger_stock": 14, "stock": 10}

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFound):
            inventory_service.reconcile_product(123456)
