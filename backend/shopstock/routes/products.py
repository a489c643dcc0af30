# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/shopstock/routes/products.py
"""
Product routes.

- POST /api/products: catalogue product (Admin/Manager global, Seller owns it)
- POST /api/products/shop: create or re-list a product in the seller's shop
- PATCH /api/products/<id>: staff edit of any catalogue product
- PATCH /api/products/<id>/shop/<shop_id>: seller edits an owned product
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import InternalError, StockError, StockValidationError
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_role("Admin", "Manager", "Seller")
def create_product_route():
    """Body: {"sku", "name", "price_cents"?, "cost_cents"?, "min_stock"?, "initial_stock"?, ...}"""
    try:
        data = request.get_json(silent=True) or {}
        user = g.current_user
        owner_id = user.id if user.role == "Seller" else None

        product = product_service.create_product(data, user.id, owner_id=owner_id)
        return jsonify({"isSuccess": True, "product": product.to_dict()}), 201

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@products_bp.post("/shop")
@require_role("Seller")
def create_product_for_shop_route():
    """Body: {"shop_id", "product_data": {...}, "custom_price_cents"?}"""
    try:
        data = request.get_json(silent=True) or {}
        shop_id = data.get("shop_id")
        if shop_id is None:
            raise StockValidationError("shop_id is required", details={"field": "shop_id"})

        product = product_service.create_product_for_shop(
            shop_id,
            data.get("product_data") or {},
            g.current_user.id,
            custom_price_cents=data.get("custom_price_cents"),
        )
        return jsonify({"isSuccess": True, "product": product.to_dict()}), 201

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to create product for shop")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@products_bp.patch("/<int:product_id>")
@require_role("Admin", "Manager", "StockKeeper")
def update_product_route(product_id: int):
    """Body: plain product fields, "sku"?, "stock"? (moved through the ledger)"""
    try:
        data = request.get_json(silent=True) or {}
        product = product_service.update_product(product_id, data, g.current_user.id)
        return jsonify({"isSuccess": True, "product": product.to_dict()}), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify(InternalError("Internal server error").to_dict()), 500


@products_bp.patch("/<int:product_id>/shop/<int:shop_id>")
@require_role("Seller")
def update_product_for_shop_route(product_id: int, shop_id: int):
    """Body: {"product_data": {...}, "custom_price_cents"?}"""
    try:
        data = request.get_json(silent=True) or {}
        product = product_service.update_product_for_shop(
            product_id,
            shop_id,
            data.get("product_data") or {},
            g.current_user.id,
            custom_price_cents=data.get("custom_price_cents"),
        )
        return jsonify({"isSuccess": True, "product": product.to_dict()}), 200

    except StockError as e:
        return jsonify(e.to_dict()), e.status
    except Exception:
        current_app.logger.exception("Failed to update product for shop")
        return jsonify(InternalError("Internal server error").to_dict()), 500


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
        return jsonify({"isSuccess": True, "product": product.to_dict()}), 200
    except StockError as e:
        return jsonify(e.to_dict()), e.status
