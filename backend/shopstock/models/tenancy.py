from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Shop(db.Model):
    """
    Seller storefront.

    MULTI-TENANT: A shop belongs to exactly one owner (a Seller user). Products
    are made visible in shops through ProductShop overlays, which may also carry
    shop-specific price and stock.
    """
    __tablename__ = "shops"
    __table_args__ = (
        db.Index("ix_shops_owner_active", "owner_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner = db.relationship("User", backref=db.backref("shops", lazy=True))

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r} owner_id={self.owner_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
