# Overview: Service-layer operations for the unit store; tag assignment, tag lookup and the stock mirror.

"""
Unit Store - one row per physical unit of a unit-tracked product

UNIQUENESS: a tag belongs to at most one unit across ALL products. Checked
before assignment and backed by the UNIQUE constraint on product_units.tag,
so two terminals racing on the same tag cannot both win.

LAZY ALLOCATION: assigning a tag first reuses an untagged in-stock unit of the
product; only when none exists is a new unit appended. Units are never deleted
or renumbered.

MIRROR: Product.manual_stock of a unit-tracked product equals the number of its
in-stock units (tagged or not). Every unit mutation rewrites it with one
UPDATE ... SET manual_stock = (SELECT COUNT(*) ...) in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, ProductUnit, UnitTrackedProduct
from ..models.inventory import UNIT_IN_STOCK, UNIT_SOLD
from ..validation import ConflictError, NotFoundError, ValidationError, require_quantity
from .catalog_service import get_product
from .concurrency import run_with_retry


class DuplicateTagError(ConflictError):
    """Tag already attached to some unit (any product)."""


class NotUnitTrackedError(ValidationError):
    """Operation needs a unit-tracked product."""


class UnitNotAvailableError(ConflictError):
    """Unit exists but is no longer in stock."""


class TagNotFoundError(NotFoundError):
    """No unit carries this tag."""


@dataclass(frozen=True)
class TagMatch:
    product: Product
    unit: ProductUnit


def normalize_tag(value) -> str:
    """Normalize to uppercase, no spaces."""
    if not isinstance(value, str):
        raise ValidationError("Tag must be a string")
    normalized = value.upper().strip().replace(" ", "")
    if not normalized:
        raise ValidationError("Tag is required")
    return normalized


def require_unit_tracked(product: Product) -> UnitTrackedProduct:
    if not isinstance(product, UnitTrackedProduct):
        raise NotUnitTrackedError(f"Product {product.id} does not use unit tracking")
    return product


def refresh_stock_mirror(product_id: int) -> None:
    """Rewrite manual_stock from the unit count. Caller owns the transaction."""
    in_stock_count = (
        select(func.count(ProductUnit.id))
        .where(ProductUnit.product_id == product_id, ProductUnit.status == UNIT_IN_STOCK)
        .scalar_subquery()
    )
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(manual_stock=in_stock_count, version_id=Product.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.expire(product)


def find_by_tag(tag: str) -> TagMatch | None:
    """
    Resolve a tag to (product, unit), whatever the unit's status.

    More than one match means the uniqueness guard was bypassed (e.g. rows
    imported outside the service). That is logged as an anomaly and the lowest
    unit id wins so read paths keep working.
    """
    normalized = normalize_tag(tag)

    units = (
        db.session.query(ProductUnit)
        .filter(ProductUnit.tag == normalized)
        .order_by(ProductUnit.id.asc())
        .all()
    )

    if not units:
        return None

    if len(units) > 1:
        current_app.logger.warning(
            "tag_integrity_violation tag=%r unit_ids=%s product_ids=%s",
            normalized,
            [u.id for u in units],
            [u.product_id for u in units],
        )

    unit = units[0]
    return TagMatch(product=unit.product, unit=unit)


def assign_tag(product_id: int, tag: str) -> ProductUnit:
    """
    Attach tag to the product's next free unit, creating one if none is free.

    Raises:
        NotFoundError: product missing
        NotUnitTrackedError: product keeps manual stock
        DuplicateTagError: tag already on any unit
    """
    normalized = normalize_tag(tag)

    def _op():
        product = get_product(product_id, require_active=True)
        require_unit_tracked(product)

        existing = db.session.query(ProductUnit.id).filter(ProductUnit.tag == normalized).first()
        if existing is not None:
            raise DuplicateTagError(f"Tag '{normalized}' is already assigned to another unit")

        unit = (
            db.session.query(ProductUnit)
            .filter(
                ProductUnit.product_id == product.id,
                ProductUnit.status == UNIT_IN_STOCK,
                ProductUnit.tag.is_(None),
            )
            .order_by(ProductUnit.id.asc())
            .first()
        )
        if unit is None:
            unit = ProductUnit(product_id=product.id, status=UNIT_IN_STOCK)
            db.session.add(unit)

        unit.tag = normalized
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateTagError(f"Tag '{normalized}' is already assigned to another unit") from exc

        refresh_stock_mirror(product.id)
        db.session.commit()
        current_app.logger.info(
            "tag_assigned product_id=%s unit_id=%s tag=%r", product.id, unit.id, normalized
        )
        return unit

    return run_with_retry(_op, op_name="assign_tag")


def receive_units(product_id: int, quantity: int, *, require_active: bool = True) -> list[ProductUnit]:
    """
    Append untagged in-stock units. They count toward the mirror at once and
    become sellable when tagged. Caller owns the transaction.

    require_active=False lets goods ordered before a deactivation be received.
    """
    require_quantity(quantity)
    product = get_product(product_id, require_active=require_active)
    require_unit_tracked(product)

    units = [ProductUnit(product_id=product.id, status=UNIT_IN_STOCK) for _ in range(quantity)]
    db.session.add_all(units)
    db.session.flush()
    refresh_stock_mirror(product.id)
    return units


def list_units(product_id: int, status: str | None = None) -> list[ProductUnit]:
    get_product(product_id)
    if status is not None and status not in (UNIT_IN_STOCK, UNIT_SOLD):
        raise ValidationError(f"Invalid unit status: {status}")

    q = db.session.query(ProductUnit).filter(ProductUnit.product_id == product_id)
    if status is not None:
        q = q.filter(ProductUnit.status == status)
    return q.order_by(ProductUnit.id.asc()).all()
