# Overview: Service-layer operations for purchase orders; encapsulates business logic.

"""
Purchase Order Service

LIFECYCLE:
1. pending: created, lines fixed
2. ordered: sent to supplier
3. received: every line posted an "in" movement (terminal)
4. cancelled: abandoned before receipt (terminal)

DESIGN:
- Status updates never reach "received"; only receive_purchase_order() does,
  so a received order always has its movements.
- Receipt is a single unit of work: the status flip and every line's movement
  commit together or not at all.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import AlreadyReceived, InvalidStateTransition, NotFound, StockValidationError
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Shop, Supplier
from ..models.purchasing import PO_STATUSES
from ..time_utils import utcnow
from .concurrency import product_locks
from .document_service import next_document_number
from .stock_ledger import apply_stock_change, require_actor, run_unit_of_work


RECEIVE_REASON = "Purchase Order"

# Allowed manual status transitions
STATUS_TRANSITIONS = {
    "pending": {"ordered", "cancelled"},
    "ordered": {"cancelled"},
    "received": set(),
    "cancelled": set(),
}


def _po_not_found(po_id) -> NotFound:
    return NotFound(f"Purchase order {po_id} not found", message_kh="រកមិនឃើញការបញ្ជាទិញ")


def create_purchase_order(
    *,
    supplier_id: int,
    items,
    actor_id: int,
    shop_id: int | None = None,
    owner_id: int | None = None,
    tax_cents: int = 0,
    notes: str | None = None,
    status: str = "pending",
) -> PurchaseOrder:
    """
    Create a purchase order. No stock moves until it is received.

    items: [{"product_id": int, "quantity": int, "unit_cost_cents": int | None}]
    unit_cost_cents defaults to the product's cost.
    """
    if status not in ("pending", "ordered"):
        raise StockValidationError("New purchase orders must be pending or ordered", details={"field": "status"})
    if isinstance(tax_cents, bool) or not isinstance(tax_cents, int) or tax_cents < 0:
        raise StockValidationError("tax_cents must be a non-negative integer", details={"field": "tax_cents"})
    if not items:
        raise StockValidationError("Cannot create purchase order with no items")

    require_actor(actor_id)

    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFound(f"Supplier {supplier_id} not found", message_kh="រកមិនឃើញអ្នកផ្គត់ផ្គង់")
    if not supplier.is_active:
        raise StockValidationError("Supplier is inactive", details={"supplier_id": supplier_id})
    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise NotFound(f"Shop {shop_id} not found", message_kh="រកមិនឃើញហាង")

    po_items = []
    for index, raw in enumerate(items):
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        unit_cost = raw.get("unit_cost_cents")

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise StockValidationError("Quantity must be positive", details={"item": index})

        product = db.session.get(Product, product_id) if isinstance(product_id, int) else None
        if product is None:
            raise NotFound(
                f"Product {product_id} not found",
                message_kh="រកមិនឃើញទំនិញ",
                details={"item": index},
            )

        if unit_cost is None:
            unit_cost = product.cost_cents or 0
        if isinstance(unit_cost, bool) or not isinstance(unit_cost, int) or unit_cost < 0:
            raise StockValidationError("Unit cost cannot be negative", details={"item": index})

        po_items.append(PurchaseOrderItem(
            product_id=product.id,
            name=product.name,
            quantity=quantity,
            unit_cost_cents=unit_cost,
            total_cents=quantity * unit_cost,
        ))

    po_number = next_document_number(document_type="PO", prefix="PO")

    subtotal = sum(item.total_cents for item in po_items)
    po = PurchaseOrder(
        po_number=po_number,
        supplier_id=supplier_id,
        status=status,
        owner_id=owner_id,
        shop_id=shop_id,
        ordered_by_user_id=actor_id,
        subtotal_cents=subtotal,
        tax_cents=tax_cents,
        total_cents=subtotal + tax_cents,
        notes=notes,
        items=po_items,
    )
    db.session.add(po)
    db.session.commit()
    return po


def get_purchase_order(po_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, po_id)
    if po is None:
        raise _po_not_found(po_id)
    return po


def list_purchase_orders(*, status: str | None = None, shop_id: int | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status is not None:
        query = query.filter(PurchaseOrder.status == status)
    if shop_id is not None:
        query = query.filter(PurchaseOrder.shop_id == shop_id)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def update_purchase_order_status(po_id: int, status: str) -> PurchaseOrder:
    """
    Move a purchase order along pending -> ordered -> cancelled.

    Raises:
        StockValidationError: unknown status
        InvalidStateTransition: transition not allowed (including "received")
    """
    if status not in PO_STATUSES:
        raise StockValidationError(
            f"status must be one of: {', '.join(PO_STATUSES)}",
            details={"field": "status"},
        )

    po = get_purchase_order(po_id)
    if status == "received":
        raise InvalidStateTransition(
            "Purchase orders are marked received by receiving them",
            details={"status": po.status},
        )
    if status not in STATUS_TRANSITIONS[po.status]:
        raise InvalidStateTransition(
            f"Cannot change purchase order from {po.status} to {status}",
            details={"from": po.status, "to": status},
        )

    po.status = status
    db.session.commit()
    return po


def receive_purchase_order(po_id: int, actor_id: int, shop_id: int | None = None) -> PurchaseOrder:
    """
    Receive every line of a purchase order into stock.

    shop_id attributes the movements; it defaults to the order's shop.

    Raises:
        NotFound: order or actor missing
        AlreadyReceived: order was received before (no movement is written)
        InvalidStateTransition: order was cancelled
    """
    require_actor(actor_id)

    def _op() -> PurchaseOrder:
        po = db.session.query(PurchaseOrder).filter_by(id=po_id).first()
        if po is None:
            raise _po_not_found(po_id)

        with product_locks(item.product_id for item in po.items):
            now = utcnow()
            result = db.session.execute(
                update(PurchaseOrder)
                .where(PurchaseOrder.id == po_id, PurchaseOrder.status.in_(("pending", "ordered")))
                .values(
                    status="received",
                    received_date=now,
                    received_by_user_id=actor_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                db.session.refresh(po)
                if po.status == "received":
                    raise AlreadyReceived(
                        "Purchase order already received",
                        details={"po_number": po.po_number},
                    )
                raise InvalidStateTransition(
                    f"Cannot receive a {po.status} purchase order",
                    details={"po_number": po.po_number, "status": po.status},
                )

            movement_shop = shop_id if shop_id is not None else po.shop_id
            for item in po.items:
                change = apply_stock_change(
                    item.product_id,
                    item.quantity,
                    "in",
                    RECEIVE_REASON,
                    actor_id,
                    shop_id=movement_shop,
                    reference=po.po_number,
                    commit=False,
                )
                item.stock_movement_id = change.movement.id

            db.session.commit()

        current_app.logger.info("Purchase order %s received (%d line(s))", po.po_number, len(po.items))
        return po

    return run_unit_of_work(_op, context={"po_id": po_id, "actor_id": actor_id})
