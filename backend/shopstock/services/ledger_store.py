# Overview: Persistence for the append-only stock movement ledger.

from __future__ import annotations

from ..extensions import db
from ..models import StockMovement
"""
Stock Movement Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Inserts happen inside the same DB transaction as the stock write they record.
- previous_stock/new_stock are the values observed by the guarded update.
- Ordering is by created_at then id; movements carry their own timestamp and
  no global sequence is implied.
"""


FILTERABLE_FIELDS = ("product_id", "shop_id", "user_id", "type", "reference", "scope")


def insert_stock_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reason: str,
    user_id: int,
    previous_stock: int,
    new_stock: int,
    reference: str | None = None,
    shop_id: int | None = None,
    owner_id: int | None = None,
    scope: str = "product",
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        reference=reference,
        user_id=user_id,
        owner_id=owner_id,
        shop_id=shop_id,
        scope=scope,
        previous_stock=previous_stock,
        new_stock=new_stock,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def find_movements(
    filters: dict | None = None,
    *,
    sort: str = "-created_at",
    limit: int | None = None,
) -> list[StockMovement]:
    """
    Query movements.

    filters: equality filters on FILTERABLE_FIELDS (None values are ignored).
    sort: "created_at" (oldest first) or "-created_at" (newest first), id breaking
          ties; "id" for strict insertion order.
    """
    query = db.session.query(StockMovement)
    for key, value in (filters or {}).items():
        if key not in FILTERABLE_FIELDS:
            raise ValueError(f"cannot filter movements by {key}")
        if value is not None:
            query = query.filter(getattr(StockMovement, key) == value)

    if sort == "-created_at":
        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    elif sort == "created_at":
        query = query.order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
    elif sort == "id":
        query = query.order_by(StockMovement.id.asc())
    else:
        raise ValueError(f"unsupported sort {sort!r}")

    if limit is not None:
        query = query.limit(limit)
    return query.all()
