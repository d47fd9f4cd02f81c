# Overview: Service-layer operations for procurement; supplier deliveries that add stock.

"""
Procurement Service

LIFECYCLE:
1. PENDING: Created with supplier and lines
2. RECEIVED: Goods arrived; stock added, movements appended
3. CANCELLED: Cancelled before receipt

IMMUTABLE: Once RECEIVED or CANCELLED, the document cannot change.

RECEIPT:
- Manual product: manual_stock += quantity (conditional update, same as sales)
- Unit-tracked product: quantity new untagged units. They count toward the
  mirror immediately and become ready stock once tags are assigned.
- One StockMovement{type: in, reason: 'procurement'} per line
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ManualStockProduct, Procurement, ProcurementLine
from ..time_utils import utcnow
from ..validation import MAX_PRICE, ConflictError, NotFoundError, ValidationError, require_quantity
from .catalog_service import get_product
from .concurrency import lock_for_update, run_with_retry
from .document_service import SEQUENCE_PROCUREMENTS, next_document_number
from .stock_service import MOVEMENT_IN, change_manual_stock, record_movement
from .unit_service import receive_units


STATUS_PENDING = "pending"
STATUS_RECEIVED = "received"
STATUS_CANCELLED = "cancelled"


class ProcurementStateError(ConflictError):
    """Operation is invalid for the document's current status."""


def create_procurement(supplier_name: str, items, supplier_contact: str | None = None) -> Procurement:
    supplier_name = (supplier_name or "").strip()
    if not supplier_name:
        raise ValidationError("supplier_name is required")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    def _op():
        _, document_number = next_document_number(SEQUENCE_PROCUREMENTS, "PO")
        procurement = Procurement(
            document_number=document_number,
            supplier_name=supplier_name,
            supplier_contact=(supplier_contact or "").strip() or None,
            status=STATUS_PENDING,
        )

        total = 0
        for raw in items:
            if not isinstance(raw, dict):
                raise ValidationError("each item must be an object")
            product_id = raw.get("product_id")
            if isinstance(product_id, bool) or not isinstance(product_id, int):
                raise ValidationError("product_id must be an integer")
            product = get_product(product_id, require_active=True)
            quantity = require_quantity(raw.get("quantity"))
            cost = raw.get("cost", product.cost or 0)
            if isinstance(cost, bool) or not isinstance(cost, int) or not 0 <= cost <= MAX_PRICE:
                raise ValidationError(f"cost must be an integer between 0 and {MAX_PRICE:,}")

            procurement.lines.append(ProcurementLine(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                cost=cost,
                total=cost * quantity,
            ))
            total += cost * quantity

        procurement.total_amount = total
        db.session.add(procurement)
        db.session.commit()
        return procurement

    return run_with_retry(_op, op_name="create_procurement")


def get_procurement(procurement_id: int) -> Procurement:
    procurement = db.session.get(Procurement, procurement_id)
    if procurement is None:
        raise NotFoundError(f"Procurement {procurement_id} not found")
    return procurement


def list_procurements(status: str | None = None) -> list[Procurement]:
    q = db.session.query(Procurement)
    if status is not None:
        q = q.filter(Procurement.status == status)
    return q.order_by(Procurement.created_at.desc(), Procurement.id.desc()).all()


def _locked(procurement_id: int) -> Procurement:
    procurement = lock_for_update(
        db.session.query(Procurement).filter_by(id=procurement_id)
    ).first()
    if procurement is None:
        raise NotFoundError(f"Procurement {procurement_id} not found")
    return procurement


def receive_procurement(procurement_id: int) -> Procurement:
    def _op():
        procurement = _locked(procurement_id)
        if procurement.status != STATUS_PENDING:
            raise ProcurementStateError(
                f"Cannot receive procurement in {procurement.status} status"
            )

        for line in procurement.lines:
            product = get_product(line.product_id)
            if isinstance(product, ManualStockProduct):
                change_manual_stock(product, line.quantity)
            else:
                receive_units(product.id, line.quantity, require_active=False)
            record_movement(
                product,
                type=MOVEMENT_IN,
                quantity=line.quantity,
                reason="procurement",
                reference_id=procurement.id,
            )

        procurement.status = STATUS_RECEIVED
        procurement.received_at = utcnow()
        db.session.commit()
        current_app.logger.info(
            "procurement_received id=%s document_number=%s lines=%d",
            procurement.id, procurement.document_number, len(procurement.lines),
        )
        return procurement

    return run_with_retry(_op, op_name="receive_procurement")


def cancel_procurement(procurement_id: int) -> Procurement:
    def _op():
        procurement = _locked(procurement_id)
        if procurement.status != STATUS_PENDING:
            raise ProcurementStateError(
                f"Cannot cancel procurement in {procurement.status} status"
            )
        procurement.status = STATUS_CANCELLED
        procurement.cancelled_at = utcnow()
        db.session.commit()
        return procurement

    return run_with_retry(_op, op_name="cancel_procurement")
