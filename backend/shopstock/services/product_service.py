# Overview: Service-layer operations for products; creation, catalogue edits and shop-scoped create/update.

"""
Product Service with Multi-Tenant Support

MULTI-TENANT:
- owner_id NULL = global catalogue product (admin-owned)
- a Seller owns their products; SKUs are unique per owner
- shop-scoped operations require the actor to own the shop

STOCK: products are always saved with zero stock first. Any opening quantity
or later stock edit goes through the stock ledger engine, so the movement
history explains every unit from the very first one.
"""

from __future__ import annotations

from flask import current_app

from ..errors import DuplicateSku, NotFound, ShopAccessDenied, StockValidationError
from ..extensions import db
from ..models import Product, ProductShop, Shop
from . import inventory_store
from .concurrency import product_locks
from .stock_ledger import apply_stock_change, require_actor, run_unit_of_work, set_stock_level


INITIAL_STOCK_REASON = "Initial stock"
SHOP_INITIAL_STOCK_REASON = "Initial stock for shop"
STOCK_UPDATE_REASON = "Stock update"

PRODUCT_MUTABLE_FIELDS = {"name", "description", "category", "price_cents", "cost_cents", "min_stock", "is_active"}


def _optional_non_negative_int(data: dict, field: str) -> int | None:
    value = data.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise StockValidationError(f"{field} must be a non-negative integer", details={"field": field})
    return value


def _validate_patch(data: dict) -> None:
    for field in ("price_cents", "cost_cents", "min_stock", "stock", "initial_stock"):
        _optional_non_negative_int(data, field)
    if "name" in data and (not data["name"] or not str(data["name"]).strip()):
        raise StockValidationError("Product name is required", details={"field": "name"})


def _require_sku_and_name(data: dict) -> tuple[str, str]:
    sku = (data.get("sku") or "").strip()
    name = (data.get("name") or "").strip()
    if not sku:
        raise StockValidationError("SKU is required", details={"field": "sku"})
    if not name:
        raise StockValidationError("Product name is required", details={"field": "name"})
    return sku, name


def _find_by_sku(owner_id: int | None, sku: str) -> Product | None:
    query = db.session.query(Product).filter(Product.sku == sku)
    # NULL owners compare as distinct in SQL, so the global scope needs IS NULL
    if owner_id is None:
        query = query.filter(Product.owner_id.is_(None))
    else:
        query = query.filter(Product.owner_id == owner_id)
    return query.first()


def _apply_sku_change(product: Product, data: dict) -> None:
    if "sku" not in data or data["sku"] is None:
        return
    sku = str(data["sku"]).strip()
    if not sku:
        raise StockValidationError("SKU is required", details={"field": "sku"})
    if sku == product.sku:
        return
    clash = _find_by_sku(product.owner_id, sku)
    if clash is not None and clash.id != product.id:
        raise DuplicateSku(f"SKU {sku} already exists", details={"sku": sku})
    product.sku = sku


def _require_owned_shop(shop_id: int, actor_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if shop is None:
        raise NotFound(f"Shop {shop_id} not found", message_kh="រកមិនឃើញហាង")
    if shop.owner_id != actor_id:
        raise ShopAccessDenied("You don't own this shop", details={"shop_id": shop_id})
    return shop


def _new_product(data: dict, *, sku: str, name: str, owner_id: int | None) -> Product:
    min_stock = _optional_non_negative_int(data, "min_stock")
    if min_stock is None:
        min_stock = current_app.config.get("DEFAULT_MIN_STOCK", 10)

    product = Product(
        owner_id=owner_id,
        sku=sku,
        name=name,
        description=data.get("description"),
        category=data.get("category"),
        price_cents=data.get("price_cents"),
        cost_cents=data.get("cost_cents"),
        stock=0,
        min_stock=min_stock,
        is_active=data.get("is_active", True),
    )
    product.sync_stock_flags()
    return product


def get_product(product_id: int) -> Product:
    product = inventory_store.get_product(product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", message_kh="រកមិនឃើញទំនិញ")
    return product


def create_product(data: dict, actor_id: int, owner_id: int | None = None) -> Product:
    """
    Create a product with zero stock, then post data["initial_stock"] (if > 0)
    as an "in" movement.

    Raises:
        StockValidationError: missing sku/name or negative amounts
        DuplicateSku: owner already has the SKU
    """
    _validate_patch(data)
    sku, name = _require_sku_and_name(data)
    initial_stock = _optional_non_negative_int(data, "initial_stock") or 0

    require_actor(actor_id)

    def _op() -> Product:
        if _find_by_sku(owner_id, sku) is not None:
            raise DuplicateSku(f"SKU {sku} already exists", details={"sku": sku})

        product = inventory_store.save_product(_new_product(data, sku=sku, name=name, owner_id=owner_id))

        if initial_stock > 0:
            with product_locks([product.id]):
                apply_stock_change(
                    product.id,
                    initial_stock,
                    "in",
                    INITIAL_STOCK_REASON,
                    actor_id,
                    commit=False,
                )

        db.session.commit()
        return product

    return run_unit_of_work(_op, context={"sku": sku, "owner_id": owner_id, "actor_id": actor_id})


def create_product_for_shop(
    shop_id: int,
    product_data: dict,
    actor_id: int,
    custom_price_cents: int | None = None,
) -> Product:
    """
    Create (or re-list) a product of the shop owner in one of their shops.

    - SKU already owned by the actor: the shop overlay is upserted (visible,
      custom price). When initial_stock is given the overlay tracks its own
      stock and is moved to that quantity in shop scope.
    - Otherwise: a new product owned by the actor is created with an overlay
      for the shop, and initial_stock (if > 0) is posted to the product's stock
      with the shop as attribution.

    Raises:
        NotFound: shop missing
        ShopAccessDenied: actor does not own the shop
    """
    _validate_patch(product_data)
    sku, name = _require_sku_and_name(product_data)
    if custom_price_cents is not None:
        _optional_non_negative_int({"custom_price_cents": custom_price_cents}, "custom_price_cents")

    require_actor(actor_id)
    _require_owned_shop(shop_id, actor_id)

    initial_stock = _optional_non_negative_int(product_data, "initial_stock")
    overlay_min = _optional_non_negative_int(product_data, "min_stock") or 0
    shop_price = custom_price_cents if custom_price_cents is not None else product_data.get("price_cents")

    def _op() -> Product:
        existing = _find_by_sku(actor_id, sku)

        if existing is not None:
            with product_locks([existing.id]):
                overlay = existing.overlay_for(shop_id)
                if overlay is None:
                    overlay = ProductShop(shop_id=shop_id)
                    existing.shops.append(overlay)
                overlay.is_visible = True
                overlay.custom_price_cents = shop_price

                if initial_stock is not None:
                    overlay.min_stock = overlay_min
                    if overlay.stock is None:
                        overlay.stock = 0
                    overlay.low_stock = overlay.stock <= overlay.min_stock
                    db.session.flush()
                    set_stock_level(
                        existing.id,
                        initial_stock,
                        SHOP_INITIAL_STOCK_REASON,
                        actor_id,
                        shop_id=shop_id,
                        shop_scoped=True,
                        commit=False,
                    )

                db.session.commit()
            return existing

        product = _new_product(product_data, sku=sku, name=name, owner_id=actor_id)
        product.shops.append(ProductShop(
            shop_id=shop_id,
            is_visible=True,
            custom_price_cents=shop_price,
            min_stock=overlay_min,
        ))
        inventory_store.save_product(product)

        if initial_stock:
            with product_locks([product.id]):
                apply_stock_change(
                    product.id,
                    initial_stock,
                    "in",
                    INITIAL_STOCK_REASON,
                    actor_id,
                    shop_id=shop_id,
                    commit=False,
                )

        db.session.commit()
        return product

    return run_unit_of_work(_op, context={"shop_id": shop_id, "sku": sku, "actor_id": actor_id})


def update_product_for_shop(
    product_id: int,
    shop_id: int,
    product_data: dict,
    actor_id: int,
    custom_price_cents: int | None = None,
) -> Product:
    """
    Update an owned product in the context of one of the owner's shops.

    product_data may carry plain fields, sku (unique per owner), is_visible
    (overlay), and stock.
    A stock value different from the current one is reached through an in/out
    movement with the shop as attribution; min_stock changes recompute the
    low-stock flags.

    Raises:
        NotFound: shop missing, or product missing / not owned by the actor
        ShopAccessDenied: actor does not own the shop
        DuplicateSku: the new SKU is taken by another of the owner's products
    """
    product_data = product_data or {}
    _validate_patch(product_data)
    if custom_price_cents is not None:
        _optional_non_negative_int({"custom_price_cents": custom_price_cents}, "custom_price_cents")

    require_actor(actor_id)
    _require_owned_shop(shop_id, actor_id)
    target_stock = _optional_non_negative_int(product_data, "stock")

    def _op() -> Product:
        with product_locks([product_id]):
            product = inventory_store.get_product(product_id, lock=True)
            if product is None or product.owner_id != actor_id:
                raise NotFound(
                    "Product not found",
                    message_kh="រកមិនឃើញទំនិញ",
                    details={"product_id": product_id},
                )

            _apply_sku_change(product, product_data)
            for key, value in product_data.items():
                if key in PRODUCT_MUTABLE_FIELDS and value is not None:
                    setattr(product, key, value)
            if product_data.get("min_stock") is not None:
                product.sync_stock_flags()

            overlay = product.overlay_for(shop_id)
            if overlay is None:
                product.shops.append(ProductShop(
                    shop_id=shop_id,
                    is_visible=True,
                    custom_price_cents=custom_price_cents or product_data.get("price_cents"),
                ))
            else:
                if product_data.get("is_visible") is not None:
                    overlay.is_visible = bool(product_data["is_visible"])
                overlay.custom_price_cents = (
                    custom_price_cents
                    or product_data.get("price_cents")
                    or overlay.custom_price_cents
                )

            db.session.flush()

            if target_stock is not None:
                set_stock_level(
                    product.id,
                    target_stock,
                    STOCK_UPDATE_REASON,
                    actor_id,
                    shop_id=shop_id,
                    commit=False,
                )

            db.session.commit()
        return product

    return run_unit_of_work(_op, context={"product_id": product_id, "shop_id": shop_id, "actor_id": actor_id})


def update_product(product_id: int, data: dict, actor_id: int) -> Product:
    """
    Catalogue-level edit of any product (staff roles).

    Plain fields and sku are written directly; owner is never changed here.
    A stock value is reached through an in/out movement ("Stock update").
    """
    data = data or {}
    _validate_patch(data)
    target_stock = _optional_non_negative_int(data, "stock")

    require_actor(actor_id)

    def _op() -> Product:
        with product_locks([product_id]):
            product = inventory_store.get_product(product_id, lock=True)
            if product is None:
                raise NotFound(f"Product {product_id} not found", message_kh="រកមិនឃើញទំនិញ")

            _apply_sku_change(product, data)
            for key, value in data.items():
                if key in PRODUCT_MUTABLE_FIELDS and value is not None:
                    setattr(product, key, value)
            if data.get("min_stock") is not None:
                product.sync_stock_flags()

            db.session.flush()

            if target_stock is not None:
                set_stock_level(product.id, target_stock, STOCK_UPDATE_REASON, actor_id, commit=False)

            db.session.commit()
        return product

    return run_unit_of_work(_op, context={"product_id": product_id, "actor_id": actor_id})
