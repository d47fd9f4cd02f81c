from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


STOCK_MODE_UNIT = "unit"
STOCK_MODE_MANUAL = "manual"

UNIT_IN_STOCK = "in_stock"
UNIT_SOLD = "sold"


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK MODES (single-table inheritance on stock_mode):
    - UnitTrackedProduct: stock is the number of physical units in product_units.
      manual_stock is only a mirror of COUNT(units in stock) and is rewritten
      in the same transaction as every unit mutation.
    - ManualStockProduct: manual_stock is authoritative.

    The mode is fixed at creation. Products are never hard-deleted; is_active=False
    hides them from the catalog while units, sales and audit results keep pointing at them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("manual_stock >= 0", name="ck_products_manual_stock_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_mode = db.Column(db.String(16), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True, index=True)

    # Whole currency units (IDR has no minor unit in practice)
    price = db.Column(db.Integer, nullable=False, default=0)
    cost = db.Column(db.Integer, nullable=True)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    manual_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {
        "polymorphic_on": stock_mode,
        "version_id_col": version_id,
    }

    @property
    def unit_tracked(self) -> bool:
        return self.stock_mode == STOCK_MODE_UNIT

    def stock_figures(self, tagged: int, ready: int) -> tuple[int, int]:
        """Return (ready_stock, barcode_count) given this product's unit tallies."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "cost": self.cost,
            "min_stock": self.min_stock,
            "unit_tracked": self.unit_tracked,
            "manual_stock": self.manual_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UnitTrackedProduct(Product):
    __mapper_args__ = {"polymorphic_identity": STOCK_MODE_UNIT}

    def stock_figures(self, tagged: int, ready: int) -> tuple[int, int]:
        return ready, tagged


class ManualStockProduct(Product):
    __mapper_args__ = {"polymorphic_identity": STOCK_MODE_MANUAL}

    def stock_figures(self, tagged: int, ready: int) -> tuple[int, int]:
        return self.manual_stock, 0


class ProductUnit(db.Model):
    """
    One physical unit of a unit-tracked product.

    UNIQUENESS: tag is unique across ALL units of ALL products (NULLs allowed,
    an untagged unit exists but is not sellable).

    LIFECYCLE: in_stock -> sold, only through sale consumption. A sold unit
    always carries the sale that consumed it. Units are appended, never deleted.
    """
    __tablename__ = "product_units"
    __table_args__ = (
        db.UniqueConstraint("tag", name="uq_product_units_tag"),
        db.CheckConstraint("status IN ('in_stock', 'sold')", name="ck_product_units_status"),
        db.CheckConstraint("status != 'sold' OR sale_id IS NOT NULL", name="ck_product_units_sold_has_sale"),
        db.Index("ix_product_units_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    tag = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=UNIT_IN_STOCK)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("units", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<ProductUnit id={self.id} product_id={self.product_id} tag={self.tag!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "tag": self.tag,
            "status": self.status,
            "sale_id": self.sale_id,
            "sold_at": to_utc_z(self.sold_at),
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """Append-only stock trail. One row per product per sale/receipt/adjustment."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("type IN ('in', 'out')", name="ck_stock_movements_type"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(64), nullable=False)
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class Procurement(db.Model):
    """
    Supplier delivery document.

    LIFECYCLE: pending -> received | cancelled
    """
    __tablename__ = "procurements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_number = db.Column(db.String(64), nullable=False, unique=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    supplier_contact = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship("ProcurementLine", backref="procurement", lazy=True, order_by="ProcurementLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "supplier_name": self.supplier_name,
            "supplier_contact": self.supplier_contact,
            "status": self.status,
            "total_amount": self.total_amount,
            "created_at": to_utc_z(self.created_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "items": [line.to_dict() for line in self.lines],
        }


class ProcurementLine(db.Model):
    __tablename__ = "procurement_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_procurement_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    procurement_id = db.Column(db.Integer, db.ForeignKey("procurements.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    cost = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "cost": self.cost,
            "total": self.total,
        }
