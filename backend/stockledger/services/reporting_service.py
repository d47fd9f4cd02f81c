# Overview: Service-layer operations for reporting; audit reports, monthly audit merge and sales summary.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import AuditReport, AuditSession, Sale, StockMovement
from ..models.documents import AUDIT_COMPLETED
from ..time_utils import local_month_bounds, to_utc_z
from ..validation import NotFoundError, ValidationError
from .audit_service import LABEL_LOW_STOCK, LABEL_NOT_AUDITED, classify_variance, date_key, is_low_stock, result_row
from .stock_service import MOVEMENT_IN, MOVEMENT_OUT, get_all_with_stock

LABEL_NORMAL = "Normal"


def _check_month(year: int, month: int) -> str:
    if isinstance(year, bool) or not isinstance(year, int) or not 1900 <= year <= 9999:
        raise ValidationError("year must be a four-digit integer")
    if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    return f"{year:04d}-{month:02d}-"


def _month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    return local_month_bounds(year, month, current_app.config.get("AUDIT_TIMEZONE", "UTC"))


def list_reports(start=None, end=None) -> list[AuditReport]:
    """Numbered audit reports, newest first. start/end are inclusive calendar dates."""
    q = db.session.query(AuditReport)
    if start is not None:
        q = q.filter(AuditReport.audit_date >= date_key(start))
    if end is not None:
        q = q.filter(AuditReport.audit_date <= date_key(end))
    return q.order_by(AuditReport.id.desc()).all()


def get_report(report_id: int) -> AuditReport:
    report = db.session.get(AuditReport, report_id)
    if report is None:
        raise NotFoundError(f"Audit report {report_id} not found")
    return report


def _newer(stamp: datetime | None, existing: datetime | None, live: bool) -> bool:
    if stamp is None:
        return False
    if existing is None:
        return True
    return stamp > existing or (live and stamp == existing)


def audits_by_month(year: int, month: int) -> list[dict]:
    """
    One entry per audit date in the month, oldest first.

    Numbered reports and live by-date sessions are merged per date. For each
    product the most recently written result wins: a report row is stamped
    with the report's creation time, a live row with its own update time, and
    live rows win ties.
    """
    prefix = _check_month(year, month)

    # (audit_date, [(stamp, row)], live)
    sources: list[tuple[str, list[tuple[datetime | None, dict]], bool]] = []
    for report in (
        db.session.query(AuditReport)
        .filter(AuditReport.audit_date.like(f"{prefix}%"))
        .order_by(AuditReport.id.asc())
    ):
        sources.append((report.audit_date, [(report.created_at, row) for row in report.results or []], False))

    for session in (
        db.session.query(AuditSession)
        .filter(AuditSession.audit_date.like(f"{prefix}%"))
        .order_by(AuditSession.audit_date.asc())
    ):
        sources.append((session.audit_date, [(r.updated_at, result_row(r)) for r in session.results], True))

    by_date: dict[str, dict] = {}
    for audit_date, rows, live in sources:
        entry = by_date.setdefault(audit_date, {"date": audit_date, "updated_at": None, "results": {}})

        for stamp, row in rows:
            product_id = row.get("product_id")
            if product_id is None:
                continue
            if stamp is not None and (entry["updated_at"] is None or stamp > entry["updated_at"]):
                entry["updated_at"] = stamp

            existing = entry["results"].get(product_id)
            if existing is None or _newer(stamp, existing[0], live):
                entry["results"][product_id] = (stamp, row)

    merged = []
    for audit_date in sorted(by_date):
        entry = by_date[audit_date]
        merged.append({
            "date": audit_date,
            "updated_at": to_utc_z(entry["updated_at"]),
            "results": [row for _, row in sorted(entry["results"].values(), key=lambda p: p[1]["product_id"])],
        })
    return merged


def _latest_results(audits: list[dict]) -> dict[int, tuple[str, dict]]:
    """
    Per product, the most recent counted result of the month, falling back to
    the most recent uncounted one.
    """
    latest: dict[int, tuple[str, dict]] = {}
    for audit in audits:
        for row in audit["results"]:
            product_id = row["product_id"]
            current = latest.get(product_id)
            counted = row.get("physical_stock") is not None
            if current is None or counted or current[1].get("physical_stock") is None:
                latest[product_id] = (audit["date"], row)
    return latest


def _movement_totals(start: datetime, end: datetime) -> dict[int, dict[str, int]]:
    rows = (
        db.session.query(StockMovement.product_id, StockMovement.type, func.sum(StockMovement.quantity))
        .filter(StockMovement.created_at >= start, StockMovement.created_at < end)
        .group_by(StockMovement.product_id, StockMovement.type)
        .all()
    )
    totals: dict[int, dict[str, int]] = defaultdict(lambda: {MOVEMENT_IN: 0, MOVEMENT_OUT: 0})
    for product_id, type_, quantity in rows:
        totals[product_id][type_] = int(quantity or 0)
    return totals


def stock_audit_rows(year: int, month: int) -> list[dict]:
    """
    Month-end stock audit export, one row per active product.

    System stock is the product's current stock; physical stock comes from the
    product's latest audit result in the month.
    """
    _check_month(year, month)
    start, end = _month_bounds(year, month)

    latest = _latest_results(audits_by_month(year, month))
    movements = _movement_totals(start, end)

    rows = []
    for product in get_all_with_stock():
        system_stock = product["manual_stock"]
        audit_date, result = latest.get(product["id"], (None, None))
        physical = result.get("physical_stock") if result else None
        variance = physical - system_stock if physical is not None else None

        if physical is None:
            stock_status = LABEL_LOW_STOCK if is_low_stock(system_stock, product["min_stock"]) else LABEL_NORMAL
        else:
            stock_status = classify_variance(physical, system_stock, product["min_stock"])

        totals = movements.get(product["id"], {MOVEMENT_IN: 0, MOVEMENT_OUT: 0})
        rows.append({
            "product_id": product["id"],
            "name": product["name"],
            "category": product["category"],
            "system_stock": system_stock,
            "ready_stock": product["ready_stock"],
            "physical_stock": physical,
            "variance": variance,
            "stock_in": totals[MOVEMENT_IN],
            "stock_out": totals[MOVEMENT_OUT],
            "audit_date": audit_date,
            "audit_status": result["status"] if result else LABEL_NOT_AUDITED,
            "audit_completed": bool(result and result["status"] == AUDIT_COMPLETED),
            "stock_status": stock_status,
        })
    return rows


def sales_summary(year: int, month: int) -> dict:
    _check_month(year, month)
    start, end = _month_bounds(year, month)

    sales = (
        db.session.query(Sale)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )

    total_revenue = sum(s.total_amount for s in sales)
    total_transactions = len(sales)
    by_method: dict[str, int] = defaultdict(int)
    for s in sales:
        by_method[s.payment_method] += s.total_amount

    return {
        "year": year,
        "month": month,
        "total_revenue": total_revenue,
        "total_transactions": total_transactions,
        "total_lines": sum(len(s.lines) for s in sales),
        "total_units": sum(line.quantity for s in sales for line in s.lines),
        "average_transaction_value": (total_revenue / total_transactions) if total_transactions else 0,
        "revenue_by_payment_method": dict(by_method),
        "sales": [s.to_dict() for s in sales],
    }
