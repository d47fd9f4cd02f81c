# Overview: Service-layer operations for payment intents; bridges an external provider's outcome to the sale ledger.

"""
Payment Bridge

WHY: A QRIS payment settles asynchronously. The cart is stored as a pending
intent; the sale is only created when the provider reports success, so stock is
never consumed for a payment that did not go through.

LIFECYCLE:
  pending -> success | failed | canceled | expired

- Terminal statuses are recorded once. Repeating a report is a no-op that
  returns the intent unchanged.
- On success the sale and the intent update commit together.
- If the sale cannot be created (stock sold meanwhile, product deactivated),
  the success is still recorded with failure_reason and the error propagates
  for operator follow-up.
"""

from __future__ import annotations

import secrets

from flask import current_app

from ..extensions import db
from ..models import PaymentIntent
from ..models.sales import PAYMENT_METHOD_QRIS, PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .catalog_service import get_product
from .concurrency import lock_for_update, run_with_retry
from .sales_service import SaleError, _create_sale_locked, _merge_lines


STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_CANCELED = "canceled"
STATUS_EXPIRED = "expired"

TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_FAILED, STATUS_CANCELED, STATUS_EXPIRED)

# Provider transaction status codes that end a payment
PROVIDER_STATUS_CODES = {
    "00": STATUS_SUCCESS,
    "05": STATUS_CANCELED,
    "06": STATUS_FAILED,
}


def _order_reference() -> str:
    return f"ORD_{utcnow():%Y%m%d%H%M%S}_{secrets.token_hex(3)}".upper()


def normalize_provider_status(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("status is required")
    value = value.strip().lower()
    value = PROVIDER_STATUS_CODES.get(value, value)
    if value not in TERMINAL_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TERMINAL_STATUSES)}")
    return value


def create_payment_intent(items, meta=None) -> PaymentIntent:
    """Store the cart and its catalog-priced amount until the provider reports back."""
    lines = _merge_lines(items)
    meta = dict(meta or {})
    method = meta.setdefault("payment_method", PAYMENT_METHOD_QRIS)
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    def _op():
        amount = 0
        for product_id, line in lines.items():
            product = get_product(product_id, require_active=True)
            amount += product.price * line.quantity

        intent = PaymentIntent(
            order_reference=_order_reference(),
            amount=amount,
            payment_method=method,
            items=[
                {"product_id": line.product_id, "quantity": line.quantity, "scanned_tags": list(line.scanned_tags)}
                for line in lines.values()
            ],
            meta=meta,
            status=STATUS_PENDING,
        )
        db.session.add(intent)
        db.session.commit()
        current_app.logger.info(
            "payment_intent_created order_reference=%s amount=%s", intent.order_reference, amount
        )
        return intent

    return run_with_retry(_op, op_name="create_payment_intent")


def get_payment_intent(order_reference: str) -> PaymentIntent:
    intent = db.session.query(PaymentIntent).filter_by(order_reference=order_reference).first()
    if intent is None:
        raise NotFoundError(f"Payment {order_reference} not found")
    return intent


def record_provider_status(order_reference: str, status: str) -> PaymentIntent:
    """
    Record the provider's terminal outcome for an intent.

    Raises:
        NotFoundError: unknown order_reference
        ValidationError: status is not terminal
        SaleError (and sale-path errors): success reported but the sale could not be created
    """
    status = normalize_provider_status(status)

    def _op():
        intent = lock_for_update(
            db.session.query(PaymentIntent).filter_by(order_reference=order_reference)
        ).first()
        if intent is None:
            raise NotFoundError(f"Payment {order_reference} not found")

        if intent.status != STATUS_PENDING:
            if intent.status != status:
                current_app.logger.warning(
                    "payment_status_ignored order_reference=%s recorded=%s reported=%s",
                    order_reference, intent.status, status,
                )
            return intent

        intent.status = status
        intent.settled_at = utcnow()
        if status == STATUS_SUCCESS:
            sale = _create_sale_locked(intent.items, {**(intent.meta or {}), "payment_reference": order_reference})
            intent.sale_id = sale.id

        db.session.commit()
        current_app.logger.info(
            "payment_settled order_reference=%s status=%s sale_id=%s",
            order_reference, status, intent.sale_id,
        )
        return intent

    try:
        return run_with_retry(_op, op_name="record_provider_status")
    except (SaleError, ValueError, LookupError) as exc:
        if isinstance(exc, NotFoundError) and not _exists(order_reference):
            raise
        _record_failure(order_reference, status, exc)
        raise


def _exists(order_reference: str) -> bool:
    return db.session.query(PaymentIntent.id).filter_by(order_reference=order_reference).first() is not None


def _record_failure(order_reference: str, status: str, exc: Exception) -> None:
    def _op():
        intent = lock_for_update(
            db.session.query(PaymentIntent).filter_by(order_reference=order_reference)
        ).first()
        if intent is None or intent.status != STATUS_PENDING:
            return
        intent.status = status
        intent.settled_at = utcnow()
        intent.failure_reason = str(exc)[:255]
        db.session.commit()

    run_with_retry(_op, op_name="record_provider_status")
    current_app.logger.error(
        "payment_sale_failed order_reference=%s status=%s error=%s", order_reference, status, exc
    )
