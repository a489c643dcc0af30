# Overview: Stock ledger engine; the single entry point for every stock change.

"""
Stock Ledger Engine

Every change to Product.stock (or a shop overlay's stock) goes through
apply_stock_change(), which performs, as one unit:

1. read the current counter (previous_stock)
2. compute new_stock = previous_stock + signed_delta
3. refuse the change if new_stock < 0 (InsufficientStock, nothing written)
4. write the counter, the mainStock mirror and the low-stock flags
5. append exactly one StockMovement recording previous/new

Steps 1-4 are a single guarded UPDATE executed while holding the per-product
in-process lock (and a row lock where the database supports one), so
concurrent callers serialize and the ledger chain stays gap-free. Steps 4 and
5 share one DB transaction: either both land or neither does.

MOVEMENT TYPES:
- in:         signed_delta must be positive
- out:        signed_delta must be negative
- adjustment: either sign
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    InsufficientStock,
    NotFound,
    PersistenceFailure,
    StockError,
    StockValidationError,
)
from ..extensions import db
from ..models import Product, Shop, StockMovement, User
from ..models.inventory import MOVEMENT_TYPES
from . import inventory_store, ledger_store
from .concurrency import product_locks, run_with_retry


@dataclass(frozen=True)
class StockChange:
    product: Product
    movement: StockMovement
    previous_stock: int
    new_stock: int


def _require_int(value, field: str) -> int:
    # bool is an int subclass; True must not mean "1 unit"
    if isinstance(value, bool) or not isinstance(value, int):
        raise StockValidationError(f"{field} must be an integer", details={"field": field})
    return value


def _validate_change(product_id, signed_delta, movement_type: str, reason: str | None, shop_id) -> None:
    # product_id keys the in-process lock; "5" and 5 must not get different locks
    _require_int(product_id, "product_id")
    if shop_id is not None:
        _require_int(shop_id, "shop_id")
    _require_int(signed_delta, "quantity")
    if signed_delta == 0:
        raise StockValidationError("quantity must be non-zero", details={"field": "quantity"})

    if movement_type not in MOVEMENT_TYPES:
        raise StockValidationError(
            f"type must be one of: {', '.join(MOVEMENT_TYPES)}",
            details={"field": "type"},
        )
    if movement_type == "out" and signed_delta > 0:
        raise StockValidationError("out movements must decrease stock", details={"field": "quantity"})
    if movement_type == "in" and signed_delta < 0:
        raise StockValidationError("in movements must increase stock", details={"field": "quantity"})

    if not reason or not str(reason).strip():
        raise StockValidationError("reason is required", details={"field": "reason"})


def require_actor(actor_id) -> User:
    _require_int(actor_id, "user_id")
    actor = db.session.get(User, actor_id)
    if actor is None:
        raise NotFound(f"User {actor_id} not found", message_kh="រកមិនឃើញអ្នកប្រើប្រាស់")
    return actor


def _require_shop(shop_id) -> None:
    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise NotFound(
            f"Shop {shop_id} not found",
            message_kh="រកមិនឃើញហាង",
            details={"shop_id": shop_id},
        )


def _product_not_found(product_id) -> NotFound:
    return NotFound(
        f"Product {product_id} not found",
        message_kh="រកមិនឃើញទំនិញ",
        details={"product_id": product_id},
    )


def run_unit_of_work(op, *, context: dict):
    """
    Run op() as one committed unit with retry on lock/version conflicts.

    op must commit on success. Domain errors roll back and propagate; storage
    errors roll back, are logged with context for reconciliation, and surface
    as PersistenceFailure.
    """
    try:
        return run_with_retry(op)
    except StockError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Stock unit of work failed and was rolled back; verify ledger for %s",
            context,
            exc_info=True,
        )
        raise PersistenceFailure("Failed to save stock change") from exc


def _apply_locked(
    product_id: int,
    signed_delta: int,
    movement_type: str,
    reason: str,
    actor_id: int,
    *,
    shop_id: int | None,
    reference: str | None,
    shop_scoped: bool,
) -> StockChange:
    product = inventory_store.get_product(product_id, lock=True)
    if product is None:
        raise _product_not_found(product_id)

    # Pending ORM edits must reach the DB before the guarded UPDATE runs
    db.session.flush()

    overlay = None
    if shop_scoped:
        if shop_id is None:
            raise StockValidationError("shop_id is required for shop stock", details={"field": "shop_id"})
        overlay = inventory_store.get_shop_overlay(product_id, shop_id, lock=True)
        if overlay is None:
            raise NotFound(
                f"Product {product_id} is not listed in shop {shop_id}",
                message_kh="ទំនិញមិនមាននៅក្នុងហាងនេះទេ",
                details={"product_id": product_id, "shop_id": shop_id},
            )
        applied = inventory_store.apply_shop_delta(overlay.id, signed_delta)
        available = overlay.stock or 0
    else:
        applied = inventory_store.apply_product_delta(product_id, signed_delta)
        available = product.stock

    if applied is None:
        current_app.logger.warning(
            "Rejected stock change for product %s: delta=%s available=%s reference=%s",
            product_id, signed_delta, available, reference,
        )
        raise InsufficientStock(
            f"Insufficient stock for {product.name}",
            details={
                "product_id": product_id,
                "requested_quantity": abs(signed_delta),
                "on_hand": available,
            },
        )

    previous_stock, new_stock = applied
    movement = ledger_store.insert_stock_movement(
        product_id=product_id,
        movement_type=movement_type,
        quantity=abs(signed_delta),
        reason=reason,
        reference=reference,
        user_id=actor_id,
        owner_id=product.owner_id,
        shop_id=shop_id,
        scope="shop" if shop_scoped else "product",
        previous_stock=previous_stock,
        new_stock=new_stock,
    )

    inventory_store.refresh(product)
    if overlay is not None:
        inventory_store.refresh(overlay)

    return StockChange(
        product=product,
        movement=movement,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )


def apply_stock_change(
    product_id: int,
    signed_delta: int,
    movement_type: str,
    reason: str,
    actor_id: int,
    *,
    shop_id: int | None = None,
    reference: str | None = None,
    shop_scoped: bool = False,
    commit: bool = True,
) -> StockChange:
    """
    Apply one signed stock delta and append its movement.

    shop_scoped=True moves the stock of the product's overlay for shop_id
    instead of the global counter; otherwise shop_id is attribution only.

    commit=False joins the caller's transaction (the caller commits, rolls back
    and retries as a whole); commit=True runs as its own retried unit.

    Raises:
        StockValidationError: bad delta/type/reason combination
        NotFound: product, overlay, shop or actor missing
        InsufficientStock: the change would take stock below zero
        PersistenceFailure: storage failure (commit=True only)
    """
    _validate_change(product_id, signed_delta, movement_type, reason, shop_id)

    def _op() -> StockChange:
        require_actor(actor_id)
        _require_shop(shop_id)
        with product_locks([product_id]):
            change = _apply_locked(
                product_id,
                signed_delta,
                movement_type,
                reason,
                actor_id,
                shop_id=shop_id,
                reference=reference,
                shop_scoped=shop_scoped,
            )
            if commit:
                db.session.commit()
            return change

    if not commit:
        return _op()

    return run_unit_of_work(
        _op,
        context={
            "product_id": product_id,
            "delta": signed_delta,
            "type": movement_type,
            "actor_id": actor_id,
            "reference": reference,
        },
    )


def set_stock_level(
    product_id: int,
    target: int,
    reason: str,
    actor_id: int,
    *,
    shop_id: int | None = None,
    reference: str | None = None,
    shop_scoped: bool = False,
    commit: bool = True,
) -> StockChange | None:
    """
    Move a counter to an absolute quantity via an in/out movement.

    Returns None (and writes nothing) when the counter already equals target.
    """
    _require_int(product_id, "product_id")
    _require_int(target, "stock")
    if target < 0:
        raise StockValidationError("stock cannot be negative", details={"field": "stock"})

    def _op() -> StockChange | None:
        with product_locks([product_id]):
            product = inventory_store.get_product(product_id, lock=True)
            if product is None:
                raise _product_not_found(product_id)

            if shop_scoped:
                overlay = inventory_store.get_shop_overlay(product_id, shop_id, lock=True) if shop_id else None
                current = (overlay.stock or 0) if overlay is not None else 0
            else:
                current = product.stock

            delta = target - current
            change = None
            if delta:
                change = apply_stock_change(
                    product_id,
                    delta,
                    "in" if delta > 0 else "out",
                    reason,
                    actor_id,
                    shop_id=shop_id,
                    reference=reference,
                    shop_scoped=shop_scoped,
                    commit=False,
                )
            if commit:
                db.session.commit()
            return change

    if not commit:
        return _op()

    return run_unit_of_work(
        _op,
        context={"product_id": product_id, "target": target, "actor_id": actor_id},
    )
