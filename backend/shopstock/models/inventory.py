from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


MOVEMENT_TYPES = ("in", "out", "adjustment")
MOVEMENT_SCOPES = ("product", "shop")


class Product(db.Model):
    """
    Product master data with its on-hand stock counter.

    OWNERSHIP: owner_id is the Seller who owns the product, or NULL for
    global/admin-owned catalogue products. SKUs are unique per owner scope.

    STOCK FIELDS:
    - stock: authoritative on-hand quantity (never negative)
    - min_stock: low-stock threshold
    - low_stock: stored copy of (stock <= min_stock)
    - main_stock_*: the mainStock snapshot exposed to clients. Always mirrors
      stock/min_stock after a stock write.

    WRITES: stock columns are only changed through the stock ledger engine,
    which appends a StockMovement for every change in the same transaction.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "sku", name="uq_products_owner_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_owner_active", "owner_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=10)
    low_stock = db.Column(db.Boolean, nullable=False, default=True)

    main_stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    main_stock_min = db.Column(db.Integer, nullable=False, default=10)
    main_stock_low = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_id])
    shops = db.relationship(
        "ProductShop",
        back_populates="product",
        order_by="ProductShop.id",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def main_stock(self) -> dict:
        return {
            "quantity": self.main_stock_quantity,
            "min_stock": self.main_stock_min,
            "low_stock": self.main_stock_low,
        }

    def sync_stock_flags(self) -> None:
        """Recompute low-stock flags and the mainStock mirror from stock/min_stock."""
        is_low = self.stock <= self.min_stock
        self.low_stock = is_low
        self.main_stock_quantity = self.stock
        self.main_stock_min = self.min_stock
        self.main_stock_low = is_low

    def overlay_for(self, shop_id: int) -> "ProductShop | None":
        for overlay in self.shops:
            if overlay.shop_id == shop_id:
                return overlay
        return None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} owner_id={self.owner_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "low_stock": self.low_stock,
            "main_stock": self.main_stock,
            "shops": [overlay.to_dict() for overlay in self.shops],
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductShop(db.Model):
    """
    Per-shop overlay of a product: visibility, custom price and optional stock.

    stock is NULL when the shop sells from the product's global stock. When it
    is set, the overlay tracks its own quantity and low_stock mirrors
    (stock <= min_stock).
    """
    __tablename__ = "product_shops"
    __table_args__ = (
        db.UniqueConstraint("product_id", "shop_id", name="uq_product_shops_product_shop"),
        db.CheckConstraint("stock IS NULL OR stock >= 0", name="ck_product_shops_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    custom_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=True)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock = db.Column(db.Boolean, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="shops")
    shop = db.relationship("Shop")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "is_visible": self.is_visible,
            "custom_price_cents": self.custom_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "low_stock": self.low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit record of one stock change.

    INVARIANTS:
    - quantity is the magnitude (> 0); direction is carried by type
    - in:  new_stock - previous_stock == quantity
    - out: previous_stock - new_stock == quantity
    - previous_stock/new_stock describe the counter named by scope
      ("product" = Product.stock, "shop" = ProductShop.stock for shop_id)

    IMMUTABLE: rows are never updated or deleted (enforced by mapper events
    below). Corrections are new movements.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    scope = db.Column(db.String(16), nullable=False, default="product")
    quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    # Sale number, PO number, etc.
    reference = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    user = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} "
            f"qty={self.quantity} {self.previous_stock}->{self.new_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "scope": self.scope,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference": self.reference,
            "user_id": self.user_id,
            "owner_id": self.owner_id,
            "shop_id": self.shop_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ValueError("stock movements are append-only and cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ValueError("stock movements are append-only and cannot be deleted")
