# backend/shopstock/routes/inventory.py
"""
Inventory management routes.

ROLES:
- Adjustments: Admin, Manager, StockKeeper, Seller
- Movement history, low stock and reconciliation: Admin, Manager, StockKeeper

Adjustments are signed: a positive quantity adds stock ("in"), a negative one
removes it ("out"). A removal larger than on-hand stock is rejected with 409
INSUFFICIENT_STOCK and nothing changes.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_role
from ..errors import InternalError, StockError, StockValidationError
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

VIEW_ROLES = ("Admin", "Manager", "StockKeeper")


@inventory_bp.post("/adjust")
@require_role("Admin", "Manager", "StockKeeper", "Seller")
def adjust_stock_route():
    """Body: {"product_id", "quantity" (signed), "reason", "shop_id"?}"""
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        if product_id is None:
            raise StockValidationError("product_id is required", details={"field": "product_id"})

        change = inventory_service.adjust_stock(
            product_id,
            data.get("quantity"),
            data.get("reason"),
            g.current_user.id,
            shop_id=data.get("shop_id"),
        )
        return jsonify({
            "isSuccess": True,
            "product": change.product.to_dict(),
            "movement": change.movement.to_dict(),
        }), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@inventory_bp.get("/movements")
@require_role(*VIEW_ROLES)
def list_movements_route():
    """Query: product_id, shop_id, limit. Newest first."""
    movements = inventory_service.list_stock_movements(
        product_id=request.args.get("product_id", type=int),
        shop_id=request.args.get("shop_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({
        "isSuccess": True,
        "items": [m.to_dict() for m in movements],
        "count": len(movements),
    }), 200


@inventory_bp.get("/low-stock")
@require_role(*VIEW_ROLES)
def low_stock_route():
    products = inventory_service.list_low_stock_products(
        shop_id=request.args.get("shop_id", type=int),
    )
    return jsonify({
        "isSuccess": True,
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }), 200


@inventory_bp.get("/<int:product_id>/reconcile")
@require_role(*VIEW_ROLES)
def reconcile_route(product_id: int):
    try:
        report = inventory_service.reconcile_product(product_id)
        return jsonify({"isSuccess": True, "report": report}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status
