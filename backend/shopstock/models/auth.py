from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLES = ("Admin", "Manager", "StockKeeper", "Cashier", "Seller", "Customer")


class User(db.Model):
    """
    Platform user, referenced as actor (cashier, receiver, adjuster) and owner.

    WHY: Every stock movement must be attributable. Credentials live with the
    upstream identity provider; this table only carries identity and role.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="Cashier", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_admin(self) -> bool:
        return self.role == "Admin"

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
