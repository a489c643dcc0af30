# Overview: Pytest coverage for the stock ledger engine.

"""
Stock Ledger Engine Tests

Every successful change must leave:
- stock == main_stock.quantity
- low_stock == main_stock.low_stock == (stock <= min_stock)
- exactly one new movement whose previous/new explain the change
"""

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from shopstock.errors import InsufficientStock, NotFound, PersistenceFailure, StockValidationError
from shopstock.extensions import db
from shopstock.models import ProductShop, StockMovement
from shopstock.services import ledger_store, stock_ledger
from shopstock.services.stock_ledger import apply_stock_change, set_stock_level

from conftest import reload


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def _assert_mirror(product):
    assert product.main_stock["quantity"] == product.stock
    assert product.main_stock["min_stock"] == product.min_stock
    assert product.main_stock["low_stock"] == (product.stock <= product.min_stock)
    assert product.low_stock == (product.stock <= product.min_stock)


class TestApplyStockChange:

    def test_in_increases_stock_and_records_movement(self, make_product, stock_keeper):
        product = make_product(stock=10, min_stock=5)

        change = apply_stock_change(product.id, 20, "in", "Restock", stock_keeper.id, reference="DEL-1")

        assert change.previous_stock == 10
        assert change.new_stock == 30
        assert change.product.stock == 30
        assert change.product.low_stock is False
        _assert_mirror(change.product)

        movement = change.movement
        assert movement.type == "in"
        assert movement.quantity == 20
        assert movement.previous_stock == 10
        assert movement.new_stock == 30
        assert movement.reason == "Restock"
        assert movement.reference == "DEL-1"
        assert movement.user_id == stock_keeper.id
        assert movement.scope == "product"

    def test_out_decreases_stock_and_flags_low(self, make_product, stock_keeper):
        product = make_product(stock=10, min_stock=5)

        change = apply_stock_change(product.id, -6, "out", "Damaged", stock_keeper.id)

        assert change.new_stock == 4
        assert change.product.low_stock is True
        _assert_mirror(change.product)
        assert change.movement.quantity == 6
        assert change.movement.previous_stock - change.movement.new_stock == 6

    def test_stock_equal_to_threshold_is_low(self, make_product, stock_keeper):
        product = make_product(stock=10, min_stock=5)

        change = apply_stock_change(product.id, -5, "out", "Count correction", stock_keeper.id)

        assert change.product.stock == 5
        assert change.product.low_stock is True

    def test_decrease_to_exactly_zero_is_allowed(self, make_product, stock_keeper):
        product = make_product(stock=3)

        change = apply_stock_change(product.id, -3, "out", "Write-off", stock_keeper.id)

        assert change.product.stock == 0
        _assert_mirror(change.product)

    def test_insufficient_stock_rejected_without_writes(self, make_product, stock_keeper):
        product = make_product(stock=5, min_stock=2)
        before = len(_movements(product.id))

        with pytest.raises(InsufficientStock) as exc:
            apply_stock_change(product.id, -6, "out", "Sale", stock_keeper.id)

        assert exc.value.details["on_hand"] == 5
        assert exc.value.details["requested_quantity"] == 6
        product = reload(product)
        assert product.stock == 5
        assert product.main_stock_quantity == 5
        assert len(_movements(product.id)) == before

    def test_adjustment_type_accepts_either_sign(self, make_product, stock_keeper):
        product = make_product(stock=10)

        up = apply_stock_change(product.id, 4, "adjustment", "Recount", stock_keeper.id)
        down = apply_stock_change(product.id, -2, "adjustment", "Recount", stock_keeper.id)

        assert up.new_stock == 14
        assert down.new_stock == 12
        assert down.movement.quantity == 2

    def test_movement_chain_has_no_gaps(self, make_product, stock_keeper):
        product = make_product(stock=10)
        for delta in (5, -3, 8, -10):
            apply_stock_change(product.id, delta, "in" if delta > 0 else "out", "Chain", stock_keeper.id)

        movements = _movements(product.id)
        for prior, current in zip(movements, movements[1:]):
            assert current.previous_stock == prior.new_stock
        assert movements[-1].new_stock == reload(product).stock == 10


class TestValidation:

    @pytest.mark.parametrize("delta", [0, 1.5, "3", None, True])
    def test_bad_delta_rejected(self, make_product, stock_keeper, delta):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, delta, "adjustment", "Bad", stock_keeper.id)

    def test_out_with_positive_delta_rejected(self, make_product, stock_keeper):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, 3, "out", "Mismatch", stock_keeper.id)

    def test_in_with_negative_delta_rejected(self, make_product, stock_keeper):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, -3, "in", "Mismatch", stock_keeper.id)

    def test_unknown_type_rejected(self, make_product, stock_keeper):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, 3, "transfer", "Nope", stock_keeper.id)

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, make_product, stock_keeper, reason):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, 3, "in", reason, stock_keeper.id)

    @pytest.mark.parametrize("product_id", ["5", [1], 2.0, None, True])
    def test_non_integer_product_id_rejected(self, db_session, stock_keeper, product_id):
        with pytest.raises(StockValidationError) as exc:
            apply_stock_change(product_id, 3, "in", "Typed", stock_keeper.id)
        assert exc.value.details == {"field": "product_id"}

    def test_missing_product(self, db_session, stock_keeper):
        with pytest.raises(NotFound):
            apply_stock_change(999999, 3, "in", "Ghost", stock_keeper.id)

    def test_missing_actor(self, make_product):
        product = make_product(stock=10)
        with pytest.raises(NotFound):
            apply_stock_change(product.id, 3, "in", "Ghost actor", 999999)
        assert reload(product).stock == 10


class TestShopScope:

    def test_shop_scoped_change_moves_overlay_only(self, db_session, make_product, shop, seller):
        product = make_product(stock=50)
        overlay = ProductShop(product_id=product.id, shop_id=shop.id, stock=4, min_stock=2, low_stock=False)
        db_session.add(overlay)
        db_session.commit()

        change = apply_stock_change(
            product.id, 3, "in", "Shop delivery", seller.id, shop_id=shop.id, shop_scoped=True,
        )

        assert change.previous_stock == 4
        assert change.new_stock == 7
        assert change.movement.scope == "shop"
        assert change.movement.shop_id == shop.id
        overlay = reload(overlay)
        assert overlay.stock == 7
        assert overlay.low_stock is False
        assert reload(product).stock == 50

    def test_shop_scoped_change_cannot_go_negative(self, db_session, make_product, shop, seller):
        product = make_product(stock=50)
        overlay = ProductShop(product_id=product.id, shop_id=shop.id, stock=2, min_stock=0, low_stock=False)
        db_session.add(overlay)
        db_session.commit()

        with pytest.raises(InsufficientStock):
            apply_stock_change(product.id, -3, "out", "Shop sale", seller.id, shop_id=shop.id, shop_scoped=True)
        assert reload(overlay).stock == 2

    def test_shop_scoped_change_requires_overlay(self, make_product, shop, seller):
        product = make_product(stock=5)
        with pytest.raises(NotFound):
            apply_stock_change(product.id, 1, "in", "No overlay", seller.id, shop_id=shop.id, shop_scoped=True)

    def test_unknown_shop_rejected_before_any_write(self, make_product, stock_keeper):
        product = make_product(stock=5)
        with pytest.raises(NotFound) as exc:
            apply_stock_change(product.id, 2, "in", "Attributed", stock_keeper.id, shop_id=424242)

        assert exc.value.details == {"shop_id": 424242}
        assert reload(product).stock == 5
        assert len(_movements(product.id)) == 1

    def test_non_integer_shop_id_rejected(self, make_product, stock_keeper):
        product = make_product(stock=5)
        with pytest.raises(StockValidationError):
            apply_stock_change(product.id, 2, "in", "Attributed", stock_keeper.id, shop_id="1")

    def test_shop_id_without_scope_is_attribution_only(self, make_product, shop, seller):
        product = make_product(stock=5)

        change = apply_stock_change(product.id, 2, "in", "Attributed", seller.id, shop_id=shop.id)

        assert change.product.stock == 7
        assert change.movement.shop_id == shop.id
        assert change.movement.scope == "product"


class TestImmutability:

    def test_movement_update_rejected(self, db_session, make_product, stock_keeper):
        product = make_product(stock=5)
        movement = _movements(product.id)[0]

        movement.quantity = 99
        with pytest.raises(ValueError):
            db_session.commit()
        db_session.rollback()

        assert reload(movement).quantity == 5

    def test_movement_delete_rejected(self, db_session, make_product):
        product = make_product(stock=5)
        movement = _movements(product.id)[0]

        db_session.delete(movement)
        with pytest.raises(ValueError):
            db_session.commit()
        db_session.rollback()

        assert len(_movements(product.id)) == 1


class TestUnitOfWork:

    def test_caller_transaction_rolls_back_together(self, db_session, make_product, stock_keeper):
        product = make_product(stock=10)

        apply_stock_change(product.id, -4, "out", "Pending", stock_keeper.id, commit=False)
        db_session.rollback()

        product = reload(product)
        assert product.stock == 10
        assert len(_movements(product.id)) == 1

    def test_storage_failure_surfaces_as_persistence_failure(self, monkeypatch, make_product, stock_keeper):
        product = make_product(stock=10)

        def boom(**kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(ledger_store, "insert_stock_movement", boom)

        with pytest.raises(PersistenceFailure) as exc:
            apply_stock_change(product.id, -4, "out", "Sale", stock_keeper.id)

        assert exc.value.to_dict()["code"] == "PERSISTENCE_FAILURE"
        monkeypatch.undo()
        product = reload(product)
        assert product.stock == 10
        assert len(_movements(product.id)) == 1

    def test_transient_lock_error_is_retried(self, monkeypatch, make_product, stock_keeper):
        product = make_product(stock=10)
        real_insert = ledger_store.insert_stock_movement
        calls = {"n": 0}

        def flaky(**kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return real_insert(**kwargs)

        monkeypatch.setattr(stock_ledger.ledger_store, "insert_stock_movement", flaky)

        change = apply_stock_change(product.id, 5, "in", "Retry", stock_keeper.id)

        assert calls["n"] == 2
        assert change.new_stock == 15
        monkeypatch.undo()
        assert len(_movements(product.id)) == 2


class TestSetStockLevel:

    def test_moves_to_target_with_in_or_out(self, make_product, stock_keeper):
        product = make_product(stock=10)

        up = set_stock_level(product.id, 25, "Stock update", stock_keeper.id)
        down = set_stock_level(product.id, 7, "Stock update", stock_keeper.id)

        assert (up.movement.type, up.movement.quantity) == ("in", 15)
        assert (down.movement.type, down.movement.quantity) == ("out", 18)
        assert reload(product).stock == 7

    def test_unchanged_target_writes_nothing(self, make_product, stock_keeper):
        product = make_product(stock=10)

        assert set_stock_level(product.id, 10, "Stock update", stock_keeper.id) is None
        assert len(_movements(product.id)) == 1

    def test_negative_target_rejected(self, make_product, stock_keeper):
        product = make_product(stock=10)
        with pytest.raises(StockValidationError):
            set_stock_level(product.id, -1, "Stock update", stock_keeper.id)
