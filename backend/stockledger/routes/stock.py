# Overview: Flask API routes for stock; aggregated ready stock and the movement trail.

from flask import Blueprint, current_app, jsonify, request

from ..services import stock_service
from ..time_utils import parse_iso_datetime
from .errors import DOMAIN_ERRORS, error_response

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
def stock_overview():
    """Every active product with ready_stock and barcode_count (two reads total)."""
    try:
        return jsonify({"items": stock_service.get_all_with_stock()})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock overview")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>")
def ready_stock(product_id: int):
    try:
        return jsonify({"product_id": product_id, "ready_stock": stock_service.get_ready_stock(product_id)})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load ready stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
def list_movements():
    """
    Query params:
    - product_id: int (optional)
    - start / end: ISO-8601 datetimes, inclusive (optional)
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            start=start,
            end=end,
        )
        return jsonify({"items": [m.to_dict() for m in movements]})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
