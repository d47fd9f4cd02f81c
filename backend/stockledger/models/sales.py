from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_QRIS = "qris"
PAYMENT_METHODS = (PAYMENT_METHOD_CASH, PAYMENT_METHOD_QRIS)


class Sale(db.Model):
    """
    Completed sale. Immutable once created: there is no edit, void or delete path.

    Units consumed by the sale point back here through ProductUnit.sale_id.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Document number (e.g., "S-000001")
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    total_amount = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False)
    payment_reference = db.Column(db.String(128), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    scanned_tags = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.id")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} document_number={self.document_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "items": [line.to_dict() for line in self.lines],
            "total_amount": self.total_amount,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "scanned_tags": list(self.scanned_tags or []),
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", name="uq_sale_lines_sale_product"),
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshots at sale time
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
        }


class PaymentIntent(db.Model):
    """
    Cart held while an external payment provider settles.

    LIFECYCLE: pending -> success | failed | canceled | expired (terminal, recorded once).
    On success the stored cart becomes a Sale.
    """
    __tablename__ = "payment_intents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_reference = db.Column(db.String(64), nullable=False, unique=True)
    amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_METHOD_QRIS)
    items = db.Column(db.JSON, nullable=False, default=list)
    meta = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_reference": self.order_reference,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "items": list(self.items or []),
            "status": self.status,
            "sale_id": self.sale_id,
            "failure_reason": self.failure_reason,
            "created_at": to_utc_z(self.created_at),
            "settled_at": to_utc_z(self.settled_at),
        }
