# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/shopstock/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role
from ..errors import InternalError, StockError, StockValidationError
from ..services import sales_service
from ..time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_role("Admin", "Manager", "Cashier", "Seller")
def create_sale_route():
    """
    Create a completed sale and decrement stock for every item.

    Body: {"items": [{"product_id", "quantity", "price_cents"?}], "shop_id"?,
           "payment_method"?, "amount_paid_cents"?, "tax_cents"?, "discount_cents"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(
            data.get("items") or [],
            g.current_user.id,
            shop_id=data.get("shop_id"),
            payment_method=data.get("payment_method", "cash"),
            amount_paid_cents=data.get("amount_paid_cents"),
            tax_cents=data.get("tax_cents", 0),
            discount_cents=data.get("discount_cents", 0),
        )
        return jsonify({"isSuccess": True, "sale": sale.to_dict()}), 201

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@sales_bp.get("")
@require_role("Admin", "Manager", "Cashier", "Seller")
def list_sales_route():
    """List sales, newest first. Query: start, end (ISO-8601), limit, offset."""
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"), end_of_day=True)
        except ValueError:
            raise StockValidationError("start/end must be ISO-8601 datetimes")

        limit = request.args.get("limit", 50, type=int)
        offset = request.args.get("offset", 0, type=int)

        sales = sales_service.list_sales(start=start, end=end, limit=limit, offset=offset)
        return jsonify({
            "isSuccess": True,
            "items": [s.to_dict() for s in sales],
            "count": len(sales),
        }), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@sales_bp.get("/<int:sale_id>")
@require_role("Admin", "Manager", "Cashier", "Seller")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"isSuccess": True, "sale": sale.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status


@sales_bp.post("/<int:sale_id>/refund")
@require_role("Admin", "Manager")
def refund_sale_route(sale_id: int):
    """
    Refund a completed sale and return every item to stock.

    Returns 409 ALREADY_REFUNDED when the sale was refunded before.
    """
    try:
        sale = sales_service.refund_sale(sale_id, g.current_user.id)
        return jsonify({"isSuccess": True, "sale": sale.to_dict()}), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return jsonify(InternalError("Internal server error").to_dict()), 500
