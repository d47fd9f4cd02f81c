# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

Listing returns each product with its live ready_stock and barcode_count.
DELETE is a soft delete (is_active=false).
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import Product
from ..services import catalog_service, stock_service
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .errors import DOMAIN_ERRORS, error_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "price", "cost", "min_stock", "manual_stock"},
    required_on_create={"name"},
    extra_fields={"unit_tracked"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - include_inactive: "true" to include soft-deleted products
    """
    include_inactive = request.args.get("include_inactive", "").lower() == "true"
    try:
        return jsonify({"items": stock_service.get_all_with_stock(include_inactive=include_inactive)})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return jsonify(stock_service.get_product_with_stock(product_id))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = catalog_service.create_product(patch=patch)
        return jsonify(stock_service.get_product_with_stock(created.id)), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        catalog_service.update_product(product_id=product_id, patch=patch)
        return jsonify(stock_service.get_product_with_stock(product_id)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock-adjustments")
def adjust_stock_route(product_id: int):
    """
    Manual-stock correction.

    Request body:
    {
        "delta": int (non-zero),
        "reason": str (optional, default "adjustment"),
        "reference_id": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        product = stock_service.adjust_manual_stock(
            product_id,
            data.get("delta"),
            data.get("reason") or "adjustment",
            data.get("reference_id"),
        )
        return jsonify(stock_service.get_product_with_stock(product.id)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
