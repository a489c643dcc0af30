from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUSES = ("completed", "refunded")
PAYMENT_METHODS = ("cash", "card", "qr")


class Sale(db.Model):
    """
    Completed point-of-sale transaction.

    LIFECYCLE: completed -> refunded. Refund is terminal; a refunded sale can
    never be refunded again. Each item posts one "out" movement at creation and
    one "in" movement at refund, both referencing sale_number.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "SALE-00000042")
    sale_number = db.Column(db.String(32), nullable=False)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)

    # All amounts in cents, computed by the sale orchestrator
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cashier = db.relationship("User", foreign_keys=[cashier_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.id",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "cashier_id": self.cashier_id,
            "cashier": self.cashier.to_dict() if self.cashier else None,
            "shop_id": self.shop_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_cents": self.change_cents,
            "status": self.status,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refunded_by_user_id": self.refunded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """Line item on a sale; links to the movements it produced."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)
    refund_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "total_cents": self.total_cents,
            "stock_movement_id": self.stock_movement_id,
            "refund_movement_id": self.refund_movement_id,
        }
