"""
Sale Ledger - immutable sales that consume stock

WHY: A sale is the only path that moves units from in_stock to sold. The
ready-stock check before consumption is advisory; another terminal can sell
the same units between check and consumption. Every unit is therefore claimed
with a conditional UPDATE (in_stock -> sold, rowcount must be 1) and lost
claims are retried against a fresh candidate list, a bounded number of times
(SALE_CONSUME_ATTEMPTS) before surfacing InsufficientStockError.

ATOMICITY: the sale, its lines, unit transitions, manual-stock decrements,
mirror refresh and movements share one transaction. Any failure rolls the
whole transaction back, which also returns already-claimed units to in_stock.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import ManualStockProduct, Product, ProductUnit, Sale, SaleLine
from ..models.inventory import UNIT_IN_STOCK, UNIT_SOLD
from ..models.sales import PAYMENT_METHOD_CASH, PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, require_quantity
from .catalog_service import get_product
from .concurrency import run_with_retry
from .document_service import SEQUENCE_SALES, next_document_number
from .stock_service import (
    MOVEMENT_OUT,
    InsufficientManualStockError,
    unit_tallies,
    change_manual_stock,
    record_movement,
)
from .unit_service import (
    TagNotFoundError,
    UnitNotAvailableError,
    normalize_tag,
    refresh_stock_mirror,
)


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(SaleError):
    """Requested quantity exceeds what can be consumed. Nothing was recorded."""


@dataclass
class _Line:
    product_id: int
    quantity: int = 0
    scanned_tags: list[str] = field(default_factory=list)


def _merge_lines(items) -> dict[int, _Line]:
    """Validate cart items and merge repeated products into one line each."""
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines: dict[int, _Line] = {}
    seen_tags: set[str] = set()

    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")

        product_id = raw.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("product_id must be an integer")
        quantity = require_quantity(raw.get("quantity"))

        tags = raw.get("scanned_tags") or []
        if not isinstance(tags, list):
            raise ValidationError("scanned_tags must be a list")

        line = lines.setdefault(product_id, _Line(product_id=product_id))
        line.quantity += quantity

        for tag in tags:
            normalized = normalize_tag(tag)
            if normalized in seen_tags:
                raise ValidationError(f"Tag '{normalized}' appears more than once in this sale")
            seen_tags.add(normalized)
            line.scanned_tags.append(normalized)

    for line in lines.values():
        if len(line.scanned_tags) > line.quantity:
            raise ValidationError(
                f"Product {line.product_id}: {len(line.scanned_tags)} tags scanned for quantity {line.quantity}"
            )

    return lines


def _clean_meta(meta) -> dict:
    meta = dict(meta or {})
    method = meta.get("payment_method") or PAYMENT_METHOD_CASH
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    cleaned = {"payment_method": method}
    for key in ("customer_name", "customer_phone", "payment_reference"):
        value = meta.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        cleaned[key] = value.strip() if value else None
        if cleaned[key] == "":
            cleaned[key] = None
    return cleaned


def _select_candidate_units(product_id: int, limit: int) -> list[int]:
    """Oldest tagged in-stock units of a product (ids only)."""
    rows = (
        db.session.query(ProductUnit.id)
        .filter(
            ProductUnit.product_id == product_id,
            ProductUnit.status == UNIT_IN_STOCK,
            ProductUnit.tag.isnot(None),
        )
        .order_by(ProductUnit.id.asc())
        .limit(limit)
        .all()
    )
    return [r[0] for r in rows]


def _claim_unit(unit_id: int, sale_id: int, sold_at: datetime) -> bool:
    """Compare-and-swap in_stock -> sold. False when someone else got there first."""
    result = db.session.execute(
        update(ProductUnit)
        .where(ProductUnit.id == unit_id, ProductUnit.status == UNIT_IN_STOCK)
        .values(status=UNIT_SOLD, sale_id=sale_id, sold_at=sold_at, updated_at=sold_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _consume_units(product: Product, line: _Line, sale: Sale, sold_at: datetime) -> None:
    remaining = line.quantity

    # Scanned units are the ones physically at the counter
    for tag in line.scanned_tags:
        unit = db.session.query(ProductUnit).filter(ProductUnit.tag == tag).order_by(ProductUnit.id.asc()).first()
        if unit is None:
            raise TagNotFoundError(f"Tag '{tag}' not found")
        if unit.product_id != product.id:
            raise ValidationError(f"Tag '{tag}' belongs to product {unit.product_id}, not {product.id}")
        if not _claim_unit(unit.id, sale.id, sold_at):
            raise UnitNotAvailableError(f"Unit tagged '{tag}' is no longer in stock")
        db.session.expire(unit)
        remaining -= 1

    attempts = int(current_app.config.get("SALE_CONSUME_ATTEMPTS", 3))
    for attempt in range(1, attempts + 1):
        if remaining == 0:
            break

        candidates = _select_candidate_units(product.id, remaining)
        if not candidates:
            break

        lost = 0
        for unit_id in candidates:
            if _claim_unit(unit_id, sale.id, sold_at):
                remaining -= 1
            else:
                lost += 1

        if lost:
            current_app.logger.info(
                "sale_unit_conflict product_id=%s attempt=%d/%d lost=%d remaining=%d",
                product.id, attempt, attempts, lost, remaining,
            )

    if remaining:
        raise InsufficientStockError(
            "Insufficient stock to create sale",
            details={"items": [{
                "product_id": product.id,
                "requested_quantity": line.quantity,
                "unfilled_quantity": remaining,
            }]},
        )


def _create_sale_locked(items, meta=None) -> Sale:
    """
    Build and flush a sale inside the caller's transaction. Does not commit.

    Callers: create_sale, and the payment bridge which settles its intent in
    the same transaction.
    """
    lines = _merge_lines(items)
    meta = _clean_meta(meta)

    products: dict[int, Product] = {}
    for product_id in lines:
        products[product_id] = get_product(product_id, require_active=True)

    # Advisory check; consumption below is the authoritative one
    tallies = unit_tallies(list(lines))
    insufficient = []
    for product_id, line in lines.items():
        product = products[product_id]
        ready, _ = product.stock_figures(*tallies.get(product_id, (0, 0)))
        if line.quantity > ready:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": line.quantity,
                "ready_stock": ready,
            })
    if insufficient:
        raise InsufficientStockError("Insufficient stock to create sale", details={"items": insufficient})

    _, document_number = next_document_number(SEQUENCE_SALES, "S")
    sold_at = utcnow()

    sale = Sale(
        document_number=document_number,
        payment_method=meta["payment_method"],
        payment_reference=meta["payment_reference"],
        customer_name=meta["customer_name"],
        customer_phone=meta["customer_phone"],
        scanned_tags=[t for line in lines.values() for t in line.scanned_tags],
        total_amount=0,
    )
    db.session.add(sale)
    db.session.flush()  # sale.id is stamped on units and movements

    total_amount = 0
    for product_id, line in lines.items():
        product = products[product_id]
        name, price = product.name, product.price

        if isinstance(product, ManualStockProduct):
            try:
                change_manual_stock(product, -line.quantity)
            except InsufficientManualStockError as exc:
                raise InsufficientStockError(
                    "Insufficient stock to create sale",
                    details={"items": [{"product_id": product_id, "requested_quantity": line.quantity}]},
                ) from exc
        else:
            _consume_units(product, line, sale, sold_at)
            refresh_stock_mirror(product_id)

        line_total = price * line.quantity
        total_amount += line_total
        sale.lines.append(SaleLine(
            product_id=product_id,
            product_name=name,
            quantity=line.quantity,
            price=price,
            total=line_total,
        ))
        record_movement(product, type=MOVEMENT_OUT, quantity=line.quantity, reason="sale", reference_id=sale.id)

    sale.total_amount = total_amount
    db.session.flush()
    return sale


def create_sale(items, meta=None) -> Sale:
    """
    Record a sale and consume its stock. All or nothing.

    Raises:
        ValidationError: malformed cart, unknown payment method, inactive product
        NotFoundError / TagNotFoundError: product or scanned tag missing
        UnitNotAvailableError: a scanned unit was already sold
        InsufficientStockError: not enough ready stock (checked and while consuming)
    """
    def _op():
        sale = _create_sale_locked(items, meta)
        db.session.commit()
        current_app.logger.info(
            "sale_created id=%s document_number=%s total=%s lines=%d",
            sale.id, sale.document_number, sale.total_amount, len(sale.lines),
        )
        return sale

    return run_with_retry(_op, op_name="create_sale")


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(start: datetime | None = None, end: datetime | None = None) -> list[Sale]:
    q = db.session.query(Sale)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
