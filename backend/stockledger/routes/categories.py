# Overview: Flask API routes for categories; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import catalog_service
from .errors import DOMAIN_ERRORS, error_response

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    """Pick-list categories plus any category text already used by products."""
    try:
        return jsonify({
            "items": [c.to_dict() for c in catalog_service.list_categories()],
            "in_use": catalog_service.categories_from_products(),
        })
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.post("")
def create_category():
    data = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(data.get("name"))
        return jsonify(category.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@categories_bp.delete("/<int:category_id>")
def delete_category(category_id: int):
    try:
        catalog_service.delete_category(category_id)
        return jsonify({"ok": True}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500
