# Overview: Flask API routes for payments; payment intents and provider status reports.

"""
Payment provider bridge routes.

The provider's signature/handshake protocol lives outside this service; the
callback adapter forwards only the order reference and the terminal status.
"""
from flask import Blueprint, current_app, jsonify, request

from ..services import payment_service
from .errors import DOMAIN_ERRORS, error_response

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/intents")
def create_intent():
    data = request.get_json(silent=True) or {}
    meta = {k: data[k] for k in ("payment_method", "customer_name", "customer_phone") if k in data}
    try:
        intent = payment_service.create_payment_intent(data.get("items"), meta)
        return jsonify(intent.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create payment intent")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/intents/<order_reference>")
def get_intent(order_reference: str):
    try:
        return jsonify(payment_service.get_payment_intent(order_reference).to_dict())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment intent")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/intents/<order_reference>/status")
def provider_status(order_reference: str):
    """
    Request body:
    {
        "status": "success" | "failed" | "canceled" | "expired" (or provider code "00"/"05"/"06")
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        intent = payment_service.record_provider_status(order_reference, data.get("status"))
        return jsonify(intent.to_dict()), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment status")
        return jsonify({"error": "Internal server error"}), 500
