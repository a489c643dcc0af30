# Overview: Persistence for product stock fields (global counter and per-shop overlays).

"""
Inventory store.

The only place that writes stock columns. Deltas are applied with a single
guarded UPDATE so the database itself refuses to take a counter below zero,
and so the previous value the caller reports is the value the update was
actually applied to.
"""

from __future__ import annotations

from sqlalchemy import case, select, update

from ..extensions import db
from ..models import Product, ProductShop
from ..time_utils import utcnow
from .concurrency import lock_for_update


def get_product(product_id: int, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def save_product(product: Product) -> Product:
    """Stage a product (new or modified) and flush so it has an id."""
    db.session.add(product)
    db.session.flush()
    return product


def get_shop_overlay(product_id: int, shop_id: int, *, lock: bool = False) -> ProductShop | None:
    query = db.session.query(ProductShop).filter_by(product_id=product_id, shop_id=shop_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def apply_product_delta(product_id: int, delta: int) -> tuple[int, int] | None:
    """
    Atomically add delta to Product.stock and refresh the mainStock mirror.

    Returns (previous_stock, new_stock), or None when the guard rejected the
    change (the product would go negative) and nothing was written.
    """
    new_value = Product.stock + delta
    stmt = (
        update(Product)
        .where(Product.id == product_id, new_value >= 0)
        .values(
            stock=new_value,
            low_stock=case((new_value <= Product.min_stock, True), else_=False),
            main_stock_quantity=new_value,
            main_stock_min=Product.min_stock,
            main_stock_low=case((new_value <= Product.min_stock, True), else_=False),
            version_id=Product.version_id + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None

    new_stock = db.session.execute(
        select(Product.stock).where(Product.id == product_id)
    ).scalar_one()
    return new_stock - delta, new_stock


def apply_shop_delta(overlay_id: int, delta: int) -> tuple[int, int] | None:
    """Same as apply_product_delta for a shop overlay that tracks its own stock."""
    new_value = db.func.coalesce(ProductShop.stock, 0) + delta
    stmt = (
        update(ProductShop)
        .where(ProductShop.id == overlay_id, new_value >= 0)
        .values(
            stock=new_value,
            low_stock=case((new_value <= ProductShop.min_stock, True), else_=False),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None

    new_stock = db.session.execute(
        select(ProductShop.stock).where(ProductShop.id == overlay_id)
    ).scalar_one()
    return new_stock - delta, new_stock


def refresh(instance) -> None:
    """Reload an instance after a guarded update bypassed the identity map."""
    db.session.refresh(instance)
