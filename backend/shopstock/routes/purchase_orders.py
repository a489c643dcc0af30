# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase order routes.

ROLES: Admin, Manager and StockKeeper manage purchase orders. Receiving is the
only operation that moves stock.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role
from ..errors import InternalError, StockError
from ..services import purchase_order_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")

PO_ROLES = ("Admin", "Manager", "StockKeeper")


@purchase_orders_bp.post("")
@require_role(*PO_ROLES)
def create_purchase_order_route():
    """
    Body: {"supplier_id", "items": [{"product_id", "quantity", "unit_cost_cents"?}],
           "shop_id"?, "tax_cents"?, "notes"?, "status"? ("pending" | "ordered")}
    """
    try:
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            items=data.get("items") or [],
            actor_id=g.current_user.id,
            shop_id=data.get("shop_id"),
            owner_id=data.get("owner_id"),
            tax_cents=data.get("tax_cents", 0),
            notes=data.get("notes"),
            status=data.get("status", "pending"),
        )
        return jsonify({"isSuccess": True, "purchase_order": po.to_dict()}), 201

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@purchase_orders_bp.get("")
@require_role(*PO_ROLES)
def list_purchase_orders_route():
    pos = purchase_order_service.list_purchase_orders(
        status=request.args.get("status"),
        shop_id=request.args.get("shop_id", type=int),
    )
    return jsonify({
        "isSuccess": True,
        "items": [po.to_dict() for po in pos],
        "count": len(pos),
    }), 200


@purchase_orders_bp.get("/<int:po_id>")
@require_role(*PO_ROLES)
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(po_id)
        return jsonify({"isSuccess": True, "purchase_order": po.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status


@purchase_orders_bp.patch("/<int:po_id>/status")
@require_role(*PO_ROLES)
def update_purchase_order_status_route(po_id: int):
    """Body: {"status": "ordered" | "cancelled"}"""
    try:
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.update_purchase_order_status(po_id, data.get("status"))
        return jsonify({"isSuccess": True, "purchase_order": po.to_dict()}), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update purchase order status")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_role(*PO_ROLES)
def receive_purchase_order_route(po_id: int):
    """
    Receive every line into stock.

    Body (optional): {"shop_id"} to attribute the movements to a shop.
    Returns 409 ALREADY_RECEIVED when the order was received before.
    """
    try:
        data = request.get_json(silent=True) or {}
        po = purchase_order_service.receive_purchase_order(
            po_id,
            g.current_user.id,
            shop_id=data.get("shop_id"),
        )
        return jsonify({"isSuccess": True, "purchase_order": po.to_dict()}), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify(InternalError("Internal server error").to_dict()), 500
