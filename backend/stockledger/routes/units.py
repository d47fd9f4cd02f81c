# Overview: Flask API routes for product units; tag assignment and tag lookup.

from flask import Blueprint, current_app, jsonify, request

from ..services import unit_service
from ..services.stock_service import get_product_with_stock
from .errors import DOMAIN_ERRORS, error_response

units_bp = Blueprint("units", __name__, url_prefix="/api/units")


@units_bp.get("")
def list_units():
    """
    Query params:
    - product_id: int (required)
    - status: "in_stock" | "sold" (optional)
    """
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        return jsonify({"error": "product_id required"}), 400

    try:
        units = unit_service.list_units(product_id, status=request.args.get("status"))
        return jsonify({"items": [u.to_dict() for u in units]})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list units")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.post("/tags")
def assign_tag():
    """
    Attach a scanned tag to a product's next free unit.

    Request body:
    {
        "product_id": int,
        "tag": str
    }

    Returns:
        201: Unit tagged (with the product's refreshed stock)
        400: Invalid request / product not unit-tracked
        404: Product not found
        409: Tag already in use
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "product_id required"}), 400

    try:
        unit = unit_service.assign_tag(product_id, data.get("tag"))
        return jsonify({"unit": unit.to_dict(), "product": get_product_with_stock(product_id)}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign tag")
        return jsonify({"error": "Internal server error"}), 500


@units_bp.get("/lookup")
def lookup_tag():
    tag = request.args.get("tag")
    if not tag:
        return jsonify({"error": "tag required"}), 400

    try:
        match = unit_service.find_by_tag(tag)
        if match is None:
            return jsonify({"error": "Tag not found"}), 404
        return jsonify({"product": get_product_with_stock(match.product.id), "unit": match.unit.to_dict()})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up tag")
        return jsonify({"error": "Internal server error"}), 500
