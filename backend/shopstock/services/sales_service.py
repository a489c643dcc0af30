"""
Sales Service - sale creation and refund on top of the stock ledger

WHY: A sale is both a document (items, totals, payment) and a set of stock
decrements. Both are written in one unit of work so a sale can never exist
without its movements, or the other way round.

ALL-OR-NOTHING: every product on the sale is locked (ascending id), the
requested quantities are checked against on-hand stock up front, and any
failure rolls back the sale together with every movement already applied.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..errors import AlreadyRefunded, InsufficientStock, NotFound, StockValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, Shop
from ..models.sales import PAYMENT_METHODS
from ..time_utils import utcnow
from . import inventory_store
from .concurrency import product_locks
from .document_service import next_document_number
from .stock_ledger import apply_stock_change, require_actor, run_unit_of_work


SALE_REASON = "Sale"
REFUND_REASON = "Refund"


def _non_negative_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise StockValidationError(f"{field} must be a non-negative integer amount in cents", details={"field": field})
    return value


def _normalize_items(items) -> list[dict]:
    if not items:
        raise StockValidationError("Cannot create sale with no items")

    lines = []
    for index, raw in enumerate(items):
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        price_cents = raw.get("price_cents")

        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise StockValidationError("product_id must be an integer", details={"item": index})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise StockValidationError("quantity must be a positive integer", details={"item": index})
        if price_cents is not None:
            _non_negative_cents(price_cents, "price_cents")

        lines.append({"product_id": product_id, "quantity": quantity, "price_cents": price_cents})
    return lines


def _load_products(product_ids) -> dict[int, Product]:
    products = {}
    for product_id in sorted(set(product_ids)):
        product = inventory_store.get_product(product_id, lock=True)
        if product is None:
            raise NotFound(
                f"Product {product_id} not found",
                message_kh="រកមិនឃើញទំនិញ",
                details={"product_id": product_id},
            )
        products[product_id] = product
    return products


def _check_on_hand(lines: list[dict], products: dict[int, Product]) -> None:
    """Reject the whole sale before any write if any product is short."""
    requested: dict[int, int] = {}
    for line in lines:
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]

    insufficient = []
    for product_id, qty in requested.items():
        on_hand = products[product_id].stock
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "name": products[product_id].name,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        names = ", ".join(item["name"] for item in insufficient)
        raise InsufficientStock(
            f"Insufficient stock for {names}",
            details={"items": insufficient},
        )


def create_sale(
    items,
    actor_id: int,
    *,
    shop_id: int | None = None,
    payment_method: str = "cash",
    amount_paid_cents: int | None = None,
    tax_cents: int = 0,
    discount_cents: int = 0,
) -> Sale:
    """
    Create a completed sale and post one "out" movement per item.

    items: [{"product_id": int, "quantity": int, "price_cents": int | None}]
    price_cents defaults to the product's price.

    Raises:
        StockValidationError: malformed items/amounts or underpayment
        NotFound: product, shop or cashier missing
        InsufficientStock: any product short (nothing is written)
    """
    lines = _normalize_items(items)
    if payment_method not in PAYMENT_METHODS:
        raise StockValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"field": "payment_method"},
        )
    _non_negative_cents(tax_cents, "tax_cents")
    _non_negative_cents(discount_cents, "discount_cents")
    if amount_paid_cents is not None:
        _non_negative_cents(amount_paid_cents, "amount_paid_cents")

    require_actor(actor_id)
    if shop_id is not None and db.session.get(Shop, shop_id) is None:
        raise NotFound(f"Shop {shop_id} not found", message_kh="រកមិនឃើញហាង")

    sale_number = next_document_number(document_type="SALE", prefix="SALE")

    def _op() -> Sale:
        with product_locks(line["product_id"] for line in lines):
            products = _load_products(line["product_id"] for line in lines)
            _check_on_hand(lines, products)

            sale = Sale(
                sale_number=sale_number,
                cashier_id=actor_id,
                shop_id=shop_id,
                payment_method=payment_method,
                tax_cents=tax_cents,
                discount_cents=discount_cents,
                status="completed",
            )

            subtotal = 0
            for line in lines:
                product = products[line["product_id"]]
                price = line["price_cents"] if line["price_cents"] is not None else product.price_cents
                if price is None:
                    raise StockValidationError(
                        f"Product {product.name} has no price",
                        details={"product_id": product.id},
                    )
                line_total = price * line["quantity"]
                subtotal += line_total
                sale.items.append(SaleItem(
                    product_id=product.id,
                    name=product.name,
                    price_cents=price,
                    quantity=line["quantity"],
                    total_cents=line_total,
                ))

            total = subtotal + tax_cents - discount_cents
            if total < 0:
                raise StockValidationError("discount cannot exceed subtotal plus tax", details={"field": "discount_cents"})
            paid = total if amount_paid_cents is None else amount_paid_cents
            if paid < total:
                raise StockValidationError(
                    "amount paid is less than the sale total",
                    details={"total_cents": total, "amount_paid_cents": paid},
                )

            sale.subtotal_cents = subtotal
            sale.total_cents = total
            sale.amount_paid_cents = paid
            sale.change_cents = paid - total

            db.session.add(sale)
            db.session.flush()

            for item in sale.items:
                change = apply_stock_change(
                    item.product_id,
                    -item.quantity,
                    "out",
                    SALE_REASON,
                    actor_id,
                    shop_id=shop_id,
                    reference=sale_number,
                    commit=False,
                )
                item.stock_movement_id = change.movement.id

            db.session.commit()

        current_app.logger.info("Sale %s completed with %d item(s)", sale_number, len(lines))
        return sale

    return run_unit_of_work(_op, context={"sale_number": sale_number, "actor_id": actor_id})


def refund_sale(sale_id: int, actor_id: int) -> Sale:
    """
    Refund a completed sale: status -> refunded and one "in" movement per item.

    Raises:
        NotFound: sale or actor missing
        AlreadyRefunded: the sale was refunded before (no movement is written)
    """
    require_actor(actor_id)

    def _op() -> Sale:
        sale = db.session.query(Sale).filter_by(id=sale_id).first()
        if sale is None:
            raise NotFound(f"Sale {sale_id} not found", message_kh="រកមិនឃើញការលក់")

        with product_locks(item.product_id for item in sale.items):
            # Guarded transition: only one caller can move completed -> refunded
            result = db.session.execute(
                update(Sale)
                .where(Sale.id == sale_id, Sale.status == "completed")
                .values(status="refunded", refunded_at=utcnow(), refunded_by_user_id=actor_id)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                raise AlreadyRefunded(
                    "Sale already refunded",
                    details={"sale_number": sale.sale_number},
                )

            for item in sale.items:
                change = apply_stock_change(
                    item.product_id,
                    item.quantity,
                    "in",
                    REFUND_REASON,
                    actor_id,
                    shop_id=sale.shop_id,
                    reference=sale.sale_number,
                    commit=False,
                )
                item.refund_movement_id = change.movement.id

            db.session.commit()

        current_app.logger.info("Sale %s refunded", sale.sale_number)
        return sale

    return run_unit_of_work(_op, context={"sale_id": sale_id, "actor_id": actor_id})


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", message_kh="រកមិនឃើញការលក់")
    return sale


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    """Newest first; start/end are inclusive bounds on created_at."""
    query = db.session.query(Sale)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
