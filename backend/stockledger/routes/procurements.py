# Overview: Flask API routes for procurements; supplier deliveries.

from flask import Blueprint, current_app, jsonify, request

from ..services import procurement_service
from .errors import DOMAIN_ERRORS, error_response

procurements_bp = Blueprint("procurements", __name__, url_prefix="/api/procurements")


@procurements_bp.post("")
def create_procurement():
    """
    Request body:
    {
        "supplier_name": str,
        "supplier_contact": str (optional),
        "items": [{"product_id": int, "quantity": int, "cost": int (optional)}]
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        procurement = procurement_service.create_procurement(
            data.get("supplier_name"),
            data.get("items"),
            supplier_contact=data.get("supplier_contact"),
        )
        return jsonify(procurement.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create procurement")
        return jsonify({"error": "Internal server error"}), 500


@procurements_bp.get("")
def list_procurements():
    try:
        items = procurement_service.list_procurements(status=request.args.get("status"))
        return jsonify({"items": [p.to_dict() for p in items]})
    except Exception:
        current_app.logger.exception("Failed to list procurements")
        return jsonify({"error": "Internal server error"}), 500


@procurements_bp.get("/<int:procurement_id>")
def get_procurement(procurement_id: int):
    try:
        return jsonify(procurement_service.get_procurement(procurement_id).to_dict())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load procurement")
        return jsonify({"error": "Internal server error"}), 500


@procurements_bp.post("/<int:procurement_id>/receive")
def receive_procurement(procurement_id: int):
    try:
        return jsonify(procurement_service.receive_procurement(procurement_id).to_dict()), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive procurement")
        return jsonify({"error": "Internal server error"}), 500


@procurements_bp.post("/<int:procurement_id>/cancel")
def cancel_procurement(procurement_id: int):
    try:
        return jsonify(procurement_service.cancel_procurement(procurement_id).to_dict()), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel procurement")
        return jsonify({"error": "Internal server error"}), 500
