# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_role
from ..errors import InternalError, StockError
from ..services import supplier_service


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")

SUPPLIER_ROLES = ("Admin", "Manager", "StockKeeper", "Seller")


@suppliers_bp.post("")
@require_role(*SUPPLIER_ROLES)
def create_supplier_route():
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(
            name=data.get("name"),
            contact_person=data.get("contact_person"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            shop_id=data.get("shop_id"),
        )
    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify(InternalError("Internal server error").to_dict()), 500

    return jsonify({"isSuccess": True, "supplier": supplier.to_dict()}), 201


@suppliers_bp.get("")
@require_role(*SUPPLIER_ROLES)
def list_suppliers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    suppliers = supplier_service.list_suppliers(
        shop_id=request.args.get("shop_id", type=int),
        include_inactive=include_inactive,
    )
    return jsonify({
        "isSuccess": True,
        "items": [s.to_dict() for s in suppliers],
        "count": len(suppliers),
    }), 200


@suppliers_bp.patch("/<int:supplier_id>")
@require_role(*SUPPLIER_ROLES)
def update_supplier_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.update_supplier(supplier_id, data)
    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update supplier %s", supplier_id)
        return jsonify(InternalError("Internal server error").to_dict()), 500

    return jsonify({"isSuccess": True, "supplier": supplier.to_dict()}), 200


@suppliers_bp.delete("/<int:supplier_id>")
@require_role("Admin", "Manager", "Seller")
def deactivate_supplier_route(supplier_id: int):
    """Soft delete; purchase orders keep referencing the supplier."""
    try:
        supplier = supplier_service.deactivate_supplier(supplier_id)
    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to deactivate supplier %s", supplier_id)
        return jsonify(InternalError("Internal server error").to_dict()), 500

    return jsonify({"isSuccess": True, "supplier": supplier.to_dict()}), 200
