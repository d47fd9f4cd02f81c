from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


AUDIT_PENDING = "pending"
AUDIT_COMPLETED = "completed"


class AuditSession(db.Model):
    """
    Stock audit for one calendar day.

    At most one session per date. The session stays resumable indefinitely;
    closing it writes an AuditReport snapshot and leaves the session live.
    """
    __tablename__ = "audit_sessions"
    __table_args__ = (
        db.UniqueConstraint("audit_date", name="uq_audit_sessions_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # "YYYY-MM-DD"
    audit_date = db.Column(db.String(10), nullable=False)

    # Product the operator is currently scanning for
    current_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    results = db.relationship(
        "AuditResult",
        backref="session",
        lazy=True,
        order_by="AuditResult.product_id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.audit_date,
            "current_product_id": self.current_product_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_closed_at": to_utc_z(self.last_closed_at),
        }


class AuditResult(db.Model):
    """
    Per-product observation inside an audit session.

    system_stock / ready_stock / min_stock are snapshots taken when the row is
    created. physical_stock is NULL until something is counted; for scanned
    items it always equals len(scanned_unit_ids).
    """
    __tablename__ = "audit_results"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_audit_results_session_product"),
        db.CheckConstraint("status IN ('pending', 'completed')", name="ck_audit_results_status"),
        db.CheckConstraint(
            "physical_stock IS NULL OR physical_stock >= 0",
            name="ck_audit_results_physical_non_negative",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("audit_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    unit_tracked = db.Column(db.Boolean, nullable=False)

    system_stock = db.Column(db.Integer, nullable=False)
    ready_stock = db.Column(db.Integer, nullable=False)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    physical_stock = db.Column(db.Integer, nullable=True)
    scanned_unit_ids = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(16), nullable=False, default=AUDIT_PENDING)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def variance(self) -> int | None:
        if self.physical_stock is None:
            return None
        return self.physical_stock - self.system_stock

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "unit_tracked": self.unit_tracked,
            "system_stock": self.system_stock,
            "ready_stock": self.ready_stock,
            "min_stock": self.min_stock,
            "physical_stock": self.physical_stock,
            "scanned_unit_ids": list(self.scanned_unit_ids or []),
            "variance": self.variance,
            "status": self.status,
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditReport(db.Model):
    """
    Immutable point-in-time export of an audit session.

    id comes from the "stockAudits" document sequence, not from autoincrement.
    """
    __tablename__ = "audit_reports"

    id = db.Column(db.Integer, primary_key=True, autoincrement=False)

    # Zero-padded report number (e.g., "SA-000001")
    document_number = db.Column(db.String(64), nullable=False, unique=True)
    audit_date = db.Column(db.String(10), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey("audit_sessions.id"), nullable=False, index=True)

    summary = db.Column(db.JSON, nullable=False, default=dict)
    results = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "date": self.audit_date,
            "session_id": self.session_id,
            "summary": dict(self.summary or {}),
            "results": list(self.results or []),
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic named counters ("sales", "procurements", "stockAudits").

    WHY: Prevent duplicate numbers when two terminals allocate at the same time.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
