# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..services import reporting_service, sales_service
from ..time_utils import parse_iso_datetime
from .errors import DOMAIN_ERRORS, error_response

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "scanned_tags": [str] (optional)}],
        "payment_method": "cash" | "qris",
        "customer_name": str (optional),
        "customer_phone": str (optional),
        "payment_reference": str (optional)
    }

    Returns:
        201: Sale created
        400: Invalid request
        404: Product or tag not found
        409: Insufficient stock / unit no longer available
    """
    data = request.get_json(silent=True) or {}
    meta = {k: data.get(k) for k in ("payment_method", "customer_name", "customer_phone", "payment_reference")}

    try:
        sale = sales_service.create_sale(data.get("items"), meta)
        return jsonify({"sale": sale.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

    try:
        sales = sales_service.list_sales(start=start, end=end)
        return jsonify({"items": [s.to_dict() for s in sales]})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/summary")
def sales_summary_route():
    """Query params: year, month (required)."""
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    if year is None or month is None:
        return jsonify({"error": "year and month required"}), 400

    try:
        return jsonify(reporting_service.sales_summary(year, month))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build sales summary")
        return jsonify({"error": "Internal server error"}), 500
