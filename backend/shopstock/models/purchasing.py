from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PO_STATUSES = ("pending", "ordered", "received", "cancelled")


class Supplier(db.Model):
    """
    Vendor that purchase orders are placed with.

    OWNERSHIP: owner_id/shop_id are NULL for platform suppliers managed by
    admins; sellers own suppliers scoped to one of their shops.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_owner_active", "owner_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "owner_id": self.owner_id,
            "shop_id": self.shop_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    LIFECYCLE:
    1. pending: created, not yet sent
    2. ordered: sent to the supplier
    3. received: goods received; every line posted an "in" movement (terminal)
    4. cancelled: abandoned before receipt (terminal)

    received is only reachable through receiving, never by a plain status update.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        db.Index("ix_purchase_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "PO-00000007")
    po_number = db.Column(db.String(32), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)
    ordered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    ordered_by = db.relationship("User", foreign_keys=[ordered_by_user_id])
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        order_by="PurchaseOrderItem.id",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.to_dict() if self.supplier else None,
            "status": self.status,
            "owner_id": self.owner_id,
            "shop_id": self.shop_id,
            "ordered_by_user_id": self.ordered_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "order_date": to_utc_z(self.order_date),
            "received_date": to_utc_z(self.received_date) if self.received_date else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderItem(db.Model):
    """Line item on a purchase order; quantity is always positive."""
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    # Set when the order is received
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "total_cents": self.total_cents,
            "stock_movement_id": self.stock_movement_id,
        }
