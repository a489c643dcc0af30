# Overview: Service-layer operations for inventory; manual adjustments, ledger queries and reconciliation.

"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock is the stored on-hand counter; it never goes negative.
- Every change to it has exactly one StockMovement recording previous/new.
- Walking a product's movements in insertion order, each movement's
  previous_stock equals the prior movement's new_stock, and the last
  new_stock equals the current Product.stock.

Manual adjustments:
- A positive delta is posted as "in", a negative delta as "out".
- The reason is required and recorded verbatim.

Low stock:
- A product is low when stock <= min_stock (both the stored flag and the
  mainStock mirror follow this after every stock write).
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import Product, ProductShop, StockMovement
from . import inventory_store, ledger_store
from .stock_ledger import StockChange, apply_stock_change


def adjust_stock(
    product_id: int,
    signed_delta: int,
    reason: str,
    actor_id: int,
    shop_id: int | None = None,
) -> StockChange:
    """
    Manually add or remove stock.

    Raises:
        StockValidationError: zero/non-integer delta or empty reason
        NotFound: product or actor missing
        InsufficientStock: the removal would take stock below zero
    """
    movement_type = "in" if isinstance(signed_delta, int) and signed_delta > 0 else "out"
    return apply_stock_change(
        product_id,
        signed_delta,
        movement_type,
        reason,
        actor_id,
        shop_id=shop_id,
    )


def list_stock_movements(
    product_id: int | None = None,
    shop_id: int | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    """Newest first."""
    if limit is None:
        limit = current_app.config.get("MOVEMENT_LIST_LIMIT", 100)
    return ledger_store.find_movements(
        {"product_id": product_id, "shop_id": shop_id},
        sort="-created_at",
        limit=limit,
    )


def list_low_stock_products(shop_id: int | None = None) -> list[Product]:
    """
    Active products at or below their threshold.

    With shop_id, only products listed in that shop.
    """
    query = db.session.query(Product).filter(
        Product.is_active.is_(True),
        Product.stock <= Product.min_stock,
    )
    if shop_id is not None:
        query = query.join(ProductShop, ProductShop.product_id == Product.id).filter(
            ProductShop.shop_id == shop_id
        )
    return query.order_by(Product.stock.asc(), Product.id.asc()).all()


def _movement_delta_matches(movement: StockMovement) -> bool:
    diff = movement.new_stock - movement.previous_stock
    if movement.type == "in":
        return diff == movement.quantity
    if movement.type == "out":
        return -diff == movement.quantity
    return abs(diff) == movement.quantity


def reconcile_product(product_id: int) -> dict:
    """
    Audit a product's stock against its movement history.

    Returns a report:
    - opening_balance: previous_stock of the first movement (0 when the
      product's history is complete)
    - arithmetic_violations: movements whose previous/new disagree with
      type and quantity
    - chain_breaks: movements whose previous_stock differs from the prior
      movement's new_stock
    - final_mismatch: ledger end value vs. Product.stock, when they differ
    - mirror_drift: mainStock/low-stock fields that disagree with stock
    - is_consistent: no violations, breaks, mismatch or drift
    """
    product = inventory_store.get_product(product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", message_kh="រកមិនឃើញទំនិញ")

    movements = ledger_store.find_movements(
        {"product_id": product_id, "scope": "product"},
        sort="id",
    )

    arithmetic_violations = []
    chain_breaks = []
    prior = None
    for movement in movements:
        if not _movement_delta_matches(movement):
            arithmetic_violations.append({
                "movement_id": movement.id,
                "type": movement.type,
                "quantity": movement.quantity,
                "previous_stock": movement.previous_stock,
                "new_stock": movement.new_stock,
            })
        if prior is not None and movement.previous_stock != prior.new_stock:
            chain_breaks.append({
                "movement_id": movement.id,
                "previous_stock": movement.previous_stock,
                "expected_previous_stock": prior.new_stock,
            })
        prior = movement

    opening_balance = movements[0].previous_stock if movements else 0
    ledger_stock = prior.new_stock if prior is not None else 0

    final_mismatch = None
    if ledger_stock != product.stock:
        final_mismatch = {"ledger_stock": ledger_stock, "stock": product.stock}

    is_low = product.stock <= product.min_stock
    mirror_drift = []
    expected = {
        "main_stock_quantity": product.stock,
        "main_stock_min": product.min_stock,
        "main_stock_low": is_low,
        "low_stock": is_low,
    }
    for field, value in expected.items():
        actual = getattr(product, field)
        if actual != value:
            mirror_drift.append({"field": field, "expected": value, "actual": actual})

    is_consistent = not (arithmetic_violations or chain_breaks or final_mismatch or mirror_drift)
    if not is_consistent:
        current_app.logger.warning("Stock reconciliation found issues for product %s", product_id)

    return {
        "product_id": product.id,
        "sku": product.sku,
        "stock": product.stock,
        "movement_count": len(movements),
        "opening_balance": opening_balance,
        "arithmetic_violations": arithmetic_violations,
        "chain_breaks": chain_breaks,
        "final_mismatch": final_mismatch,
        "mirror_drift": mirror_drift,
        "is_consistent": is_consistent,
    }
