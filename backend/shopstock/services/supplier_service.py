# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

WHY: Every purchase order is placed with exactly one supplier. Suppliers are
never hard-deleted because historical purchase orders keep referencing them;
deactivation hides them from new orders instead.

MULTI-TENANT: owner_id/shop_id NULL = platform supplier; a seller's supplier
is scoped to one of their shops.
"""

from __future__ import annotations

from ..errors import NotFound, StockValidationError
from ..extensions import db
from ..models import Shop, Supplier


UPDATABLE_FIELDS = ("name", "contact_person", "email", "phone", "address")


def _clean_name(name) -> str:
    if not name or not str(name).strip():
        raise StockValidationError("Supplier name is required", details={"field": "name"})
    return str(name).strip()


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found", message_kh="រកមិនឃើញអ្នកផ្គត់ផ្គង់")
    return supplier


def create_supplier(
    *,
    name: str,
    contact_person: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    owner_id: int | None = None,
    shop_id: int | None = None,
) -> Supplier:
    """
    Create a supplier.

    Raises:
        StockValidationError: missing name
        NotFound: shop_id given but the shop does not exist
    """
    name = _clean_name(name)

    if shop_id is not None:
        shop = db.session.get(Shop, shop_id)
        if shop is None:
            raise NotFound(f"Shop {shop_id} not found", message_kh="រកមិនឃើញហាង")
        if owner_id is None:
            owner_id = shop.owner_id

    supplier = Supplier(
        name=name,
        contact_person=contact_person,
        email=email,
        phone=phone,
        address=address,
        owner_id=owner_id,
        shop_id=shop_id,
        is_active=True,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, data: dict) -> Supplier:
    """Update contact fields; unknown keys are ignored."""
    supplier = get_supplier(supplier_id)

    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "name":
            value = _clean_name(value)
        setattr(supplier, field, value)

    db.session.commit()
    return supplier


def deactivate_supplier(supplier_id: int) -> Supplier:
    """Soft delete: the supplier stays referenced by its purchase orders."""
    supplier = get_supplier(supplier_id)
    supplier.is_active = False
    db.session.commit()
    return supplier


def list_suppliers(
    *,
    shop_id: int | None = None,
    include_inactive: bool = False,
) -> list[Supplier]:
    query = db.session.query(Supplier)
    if shop_id is not None:
        query = query.filter(Supplier.shop_id == shop_id)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()
