# Overview: Shared mapping from service-layer exceptions to JSON error responses.

from flask import current_app, jsonify

from ..services.concurrency import StorageError
from ..services.sales_service import InsufficientStockError, SaleError
from ..validation import ConflictError, NotFoundError, ValidationError

# Exceptions a route answers with a 4xx/503 instead of logging a 500
DOMAIN_ERRORS = (ValidationError, ConflictError, NotFoundError, SaleError, StorageError)


def error_response(e: Exception):
    if isinstance(e, InsufficientStockError):
        return jsonify({"error": str(e), "details": e.details}), 409
    if isinstance(e, SaleError):
        return jsonify({"error": str(e), "details": e.details}), 400
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConflictError):
        return jsonify({"error": str(e), "type": type(e).__name__}), 409
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e), "type": type(e).__name__}), 400
    if isinstance(e, StorageError):
        current_app.logger.error("storage_error %s", e)
        return jsonify({"error": "Storage unavailable"}), 503
    raise e
