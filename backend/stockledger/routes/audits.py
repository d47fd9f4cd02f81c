# Overview: Flask API routes for stock audits; sessions by date, scans, counts and reports.

"""
Stock audit API routes.

Sessions are addressed by calendar date (YYYY-MM-DD). Every mutating call
returns the affected result row with its variance label so the scanner UI can
redraw without a second request.
"""
from flask import Blueprint, current_app, jsonify, request

from ..services import audit_service, reporting_service
from .errors import DOMAIN_ERRORS, error_response

audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


@audits_bp.post("/sessions")
def start_session():
    """
    Start today's session (or the given date's) or resume it.

    Request body (optional):
    {
        "date": "YYYY-MM-DD"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        session = audit_service.start_or_resume(data.get("date"))
        return jsonify(audit_service.get_session_view(session.audit_date)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start audit session")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/sessions/<audit_date>")
def session_view(audit_date: str):
    """Query params: filter = all | balanced | hasVariance"""
    try:
        view = audit_service.get_session_view(audit_date, request.args.get("filter", audit_service.FILTER_ALL))
        return jsonify(view)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load audit session")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/select")
def select_product(audit_date: str):
    data = request.get_json(silent=True) or {}
    try:
        result = audit_service.select_product(audit_date, data.get("product_id"))
        return jsonify(audit_service.result_row(result)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to select audit product")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/scan")
def scan(audit_date: str):
    """
    Request body:
    {
        "tag": str
    }

    Returns:
        200: Scan counted
        400: No product selected
        404: Tag / session not found
        409: Tag mismatch, duplicate scan, unit sold, item completed
    """
    data = request.get_json(silent=True) or {}
    try:
        result = audit_service.record_scan(audit_date, data.get("tag"))
        return jsonify(audit_service.result_row(result)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record audit scan")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/manual")
def manual_count(audit_date: str):
    data = request.get_json(silent=True) or {}
    try:
        result = audit_service.record_manual_count(audit_date, data.get("product_id"), data.get("count"))
        return jsonify(audit_service.result_row(result)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record manual count")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/items/<int:product_id>/finalize")
def finalize(audit_date: str, product_id: int):
    try:
        result = audit_service.finalize_item(audit_date, product_id)
        return jsonify(audit_service.result_row(result)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to finalize audit item")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/items/<int:product_id>/reopen")
def reopen(audit_date: str, product_id: int):
    """Request body (optional): {"policy": "reset" | "append"}"""
    data = request.get_json(silent=True) or {}
    try:
        result = audit_service.reopen_item(audit_date, product_id, policy=data.get("policy"))
        return jsonify(audit_service.result_row(result)), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reopen audit item")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.post("/sessions/<audit_date>/close")
def close(audit_date: str):
    try:
        report = audit_service.close_session(audit_date)
        return jsonify(report.to_dict()), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to close audit session")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/reports")
def list_reports():
    try:
        reports = reporting_service.list_reports(request.args.get("start"), request.args.get("end"))
        return jsonify({"items": [r.to_dict() for r in reports]})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list audit reports")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/reports/<int:report_id>")
def get_report(report_id: int):
    try:
        return jsonify(reporting_service.get_report(report_id).to_dict())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load audit report")
        return jsonify({"error": "Internal server error"}), 500


def _year_month():
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    return year, month


@audits_bp.get("/monthly")
def monthly():
    year, month = _year_month()
    if year is None or month is None:
        return jsonify({"error": "year and month required"}), 400
    try:
        return jsonify({"items": reporting_service.audits_by_month(year, month)})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load monthly audits")
        return jsonify({"error": "Internal server error"}), 500


@audits_bp.get("/stock-report")
def stock_report():
    year, month = _year_month()
    if year is None or month is None:
        return jsonify({"error": "year and month required"}), 400
    try:
        return jsonify({"items": reporting_service.stock_audit_rows(year, month)})
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build stock audit report")
        return jsonify({"error": "Internal server error"}), 500
