# Overview: Service-layer operations for stock; ready-stock aggregation and the movement trail.

"""
Stock Invariants (authoritative)

Ready stock:
- Unit-tracked product: COUNT(units WHERE tag IS NOT NULL AND status='in_stock').
  Always recomputed from product_units; never read from the manual_stock mirror.
- Manual product: manual_stock.

Barcode count:
- Unit-tracked product: COUNT(units WHERE tag IS NOT NULL), any status.
- Manual product: 0.

Aggregation:
- get_all_with_stock() issues exactly two reads (products, grouped unit tallies)
  whatever the catalog size.

Movements:
- Append-only. One row per product per sale, receipt or adjustment.
- quantity is always positive; direction is carried by type ('in' / 'out').
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import and_, case, func, update

from ..extensions import db
from ..models import ManualStockProduct, Product, ProductUnit, StockMovement
from ..models.inventory import UNIT_IN_STOCK
from ..validation import ConflictError, ValidationError
from .catalog_service import get_product
from .concurrency import run_with_retry


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"


class InsufficientManualStockError(ConflictError):
    """Conditional decrement found less stock than requested."""


def unit_tallies(product_ids=None) -> dict[int, tuple[int, int]]:
    """{product_id: (tagged, ready)} in one grouped read."""
    tagged = func.count(ProductUnit.tag)
    ready = func.sum(
        case(
            (and_(ProductUnit.tag.isnot(None), ProductUnit.status == UNIT_IN_STOCK), 1),
            else_=0,
        )
    )
    q = db.session.query(ProductUnit.product_id, tagged, ready).group_by(ProductUnit.product_id)
    if product_ids is not None:
        q = q.filter(ProductUnit.product_id.in_(product_ids))
    return {pid: (int(t or 0), int(r or 0)) for pid, t, r in q.all()}


def with_stock(product: Product, tallies: dict[int, tuple[int, int]]) -> dict:
    tagged, ready = tallies.get(product.id, (0, 0))
    ready_stock, barcode_count = product.stock_figures(tagged, ready)
    row = product.to_dict()
    row["ready_stock"] = ready_stock
    row["barcode_count"] = barcode_count
    return row


def get_all_with_stock(include_inactive: bool = False) -> list[dict]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active == True)  # noqa: E712
    products = q.order_by(Product.name.asc(), Product.id.asc()).all()

    tallies = unit_tallies()
    return [with_stock(p, tallies) for p in products]


def get_product_with_stock(product_id: int) -> dict:
    product = get_product(product_id)
    return with_stock(product, unit_tallies([product.id]))


def get_ready_stock(product_id: int) -> int:
    product = get_product(product_id)
    tagged, ready = unit_tallies([product.id]).get(product.id, (0, 0))
    return product.stock_figures(tagged, ready)[0]


def record_movement(
    product: Product,
    *,
    type: str,
    quantity: int,
    reason: str,
    reference_id=None,
) -> StockMovement:
    """Append one movement row. Caller owns the transaction."""
    if type not in (MOVEMENT_IN, MOVEMENT_OUT):
        raise ValidationError(f"Invalid movement type: {type}")
    if quantity <= 0:
        raise ValidationError("Movement quantity must be > 0")

    movement = StockMovement(
        product_id=product.id,
        product_name=product.name,
        type=type,
        quantity=quantity,
        reason=reason,
        reference_id=str(reference_id) if reference_id is not None else None,
    )
    db.session.add(movement)
    return movement


def change_manual_stock(product: ManualStockProduct, delta: int) -> None:
    """
    Conditional UPDATE on manual_stock. Decrements only apply while
    manual_stock >= |delta|, so two concurrent writers can never drive it negative.
    Caller owns the transaction.
    """
    stmt = (
        update(Product)
        .where(Product.id == product.id)
        .values(manual_stock=Product.manual_stock + delta, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(Product.manual_stock >= -delta)

    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise InsufficientManualStockError(
            f"Insufficient stock for product {product.id}: requested {-delta}"
        )
    db.session.expire(product)


def adjust_manual_stock(product_id: int, delta: int, reason: str = "adjustment", reference_id=None) -> Product:
    """
    Manual correction of a manual-stock product. Unit-tracked products only move
    through tags, sales and receipts.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    if not reason:
        raise ValidationError("reason is required")

    def _op():
        product = get_product(product_id, require_active=True)
        if not isinstance(product, ManualStockProduct):
            raise ValidationError(
                f"Product {product.id} is unit-tracked; stock follows its units"
            )

        change_manual_stock(product, delta)
        record_movement(
            product,
            type=MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
            quantity=abs(delta),
            reason=reason,
            reference_id=reference_id,
        )
        db.session.commit()
        current_app.logger.info(
            "manual_stock_adjusted product_id=%s delta=%s reason=%r", product.id, delta, reason
        )
        return product

    return run_with_retry(_op, op_name="adjust_manual_stock")


def list_movements(
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[StockMovement]:
    """Movements newest first. start/end inclusive (UTC-naive)."""
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()
