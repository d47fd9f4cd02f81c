# backend/stockledger/services/catalog_service.py
"""
Catalog Service - products and categories

STOCK MODE: chosen once at creation (unit_tracked true/false) and never changed.
A unit-tracked product starts with manual_stock=0; its stock only moves through
the unit store.

DELETE: soft delete (is_active=False). Units, sales, movements and audit results
keep referencing the product; inactive products drop out of listings, the stock
aggregate, new audit sessions, tag assignment and sales.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, UnitTrackedProduct, ManualStockProduct
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {"name", "category", "price", "cost", "min_stock", "manual_stock"}


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive")
    return product


def list_products(include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active == True)  # noqa: E712
    return q.order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(*, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    unit_tracked defaults to True (tag-driven stock), matching the scanner-first shop floor.
    """
    def _op():
        unit_tracked = patch.get("unit_tracked", True)
        fields = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS}

        if not fields.get("name"):
            raise ValidationError("Product name is required")

        if unit_tracked:
            # Stock comes from units only
            fields.pop("manual_stock", None)
            product = UnitTrackedProduct(**fields, manual_stock=0)
        else:
            fields.setdefault("manual_stock", 0)
            product = ManualStockProduct(**fields)

        db.session.add(product)
        db.session.commit()
        current_app.logger.info(
            "product_created id=%s mode=%s name=%r", product.id, product.stock_mode, product.name
        )
        return product

    return run_with_retry(_op, op_name="create_product")


def update_product(*, product_id: int, patch: dict) -> Product:
    def _op():
        product = get_product(product_id)

        if "unit_tracked" in patch and patch["unit_tracked"] != product.unit_tracked:
            raise ValidationError("Stock mode cannot be changed after creation")

        if "manual_stock" in patch and product.unit_tracked:
            raise ValidationError("manual_stock is derived from units for unit-tracked products")

        for k, v in patch.items():
            if k in PRODUCT_MUTABLE_FIELDS:
                setattr(product, k, v)

        db.session.commit()
        return product

    return run_with_retry(_op, op_name="update_product")


def delete_product(product_id: int) -> Product:
    """Soft delete; see module docstring."""
    def _op():
        product = get_product(product_id)
        product.is_active = False
        db.session.commit()
        current_app.logger.info("product_deactivated id=%s", product.id)
        return product

    return run_with_retry(_op, op_name="delete_product")


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def create_category(name: str) -> Category:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Category name is required")
    name = name.strip()

    def _op():
        category = Category(name=name)
        db.session.add(category)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Category '{name}' already exists")
        return category

    return run_with_retry(_op, op_name="create_category")


def delete_category(category_id: int) -> None:
    """Products keep their category text; only the pick-list entry goes away."""
    def _op():
        category = db.session.get(Category, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")
        db.session.delete(category)
        db.session.commit()

    run_with_retry(_op, op_name="delete_category")


def categories_from_products() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category.isnot(None), Product.category != "")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [r[0] for r in rows]
