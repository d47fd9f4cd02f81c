# backend/stockledger/services/audit_service.py
"""
Stock audit session engine.

WHY: Periodic physical counts catch shrinkage and mis-tagging. One session per
calendar day compares the stock recorded when the session started against what
the operator actually finds on the shelf.

PER-PRODUCT STATE MACHINE:
1. PENDING: nothing counted yet, or scans accumulating (physical = len(scans))
2. COMPLETED: scan count finalized, or a manual count entered
3. COMPLETED -> PENDING only through reopen_item (the explicit re-scan flow)

DURABILITY: every scan commits on its own, so an interrupted audit loses at
most the scan in flight. Results carry a version counter; two terminals
writing the same result cannot silently drop each other's scans.

RESUME: start_or_resume(date) loads the existing session for that date and
never overwrites stored results. Products added to the catalog after the
session started get a fresh pending row.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuditReport, AuditResult, AuditSession
from ..models.documents import AUDIT_COMPLETED, AUDIT_PENDING
from ..models.inventory import UNIT_IN_STOCK
from ..time_utils import local_today, parse_calendar_date, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, require_quantity
from .catalog_service import get_product
from .concurrency import run_with_retry
from .document_service import SEQUENCE_STOCK_AUDITS, next_document_number
from .stock_service import get_all_with_stock, unit_tallies
from .unit_service import TagNotFoundError, UnitNotAvailableError, find_by_tag


RESCAN_RESET = "reset"
RESCAN_APPEND = "append"
RESCAN_POLICIES = (RESCAN_RESET, RESCAN_APPEND)

FILTER_ALL = "all"
FILTER_BALANCED = "balanced"
FILTER_HAS_VARIANCE = "hasVariance"
FILTERS = (FILTER_ALL, FILTER_BALANCED, FILTER_HAS_VARIANCE)

LABEL_OVER = "Lebih"
LABEL_SHORT = "Kurang"
LABEL_BALANCED = "Sesuai"
LABEL_LOW_STOCK = "Stok Rendah"
LABEL_NOT_AUDITED = "Belum Diaudit"


class AuditError(ValidationError):
    """Audit operation is not valid in the current state."""


class TagMismatchError(ConflictError):
    """Scanned unit belongs to a product other than the one under audit."""


class DuplicateScanError(ConflictError):
    """Unit already counted for this product in this session."""


class ItemCompletedError(ConflictError):
    """Item is completed; reopen it before scanning again."""


# =============================================================================
# CLASSIFICATION
# =============================================================================

def is_low_stock(system_stock: int, min_stock: int) -> bool:
    return system_stock <= min_stock


def classify_variance(physical_stock: int | None, system_stock: int, min_stock: int) -> str:
    """
    Status label for one product.

    Lebih (+n) / Kurang (-n) whenever the counts differ. With no difference, or
    nothing counted yet, low stock (system <= min) wins over Sesuai / Belum Diaudit.
    """
    low = is_low_stock(system_stock, min_stock)
    if physical_stock is None:
        return LABEL_LOW_STOCK if low else LABEL_NOT_AUDITED

    variance = physical_stock - system_stock
    if variance > 0:
        return f"{LABEL_OVER} (+{variance})"
    if variance < 0:
        return f"{LABEL_SHORT} ({variance})"
    return LABEL_LOW_STOCK if low else LABEL_BALANCED


def filter_results(results: list[AuditResult], filter_name: str = FILTER_ALL) -> list[AuditResult]:
    """balanced / hasVariance only ever include completed items."""
    if filter_name not in FILTERS:
        raise ValidationError(f"filter must be one of: {', '.join(FILTERS)}")
    if filter_name == FILTER_ALL:
        return list(results)

    completed = [r for r in results if r.status == AUDIT_COMPLETED and r.variance is not None]
    if filter_name == FILTER_BALANCED:
        return [r for r in completed if r.variance == 0]
    return [r for r in completed if r.variance != 0]


def result_row(result: AuditResult) -> dict:
    row = result.to_dict()
    row["has_variance"] = result.variance is not None and result.variance != 0
    row["low_stock"] = is_low_stock(result.system_stock, result.min_stock)
    row["label"] = classify_variance(result.physical_stock, result.system_stock, result.min_stock)
    return row


def summarize(results: list[AuditResult]) -> dict:
    completed = [r for r in results if r.status == AUDIT_COMPLETED]
    with_variance = [r for r in completed if r.variance not in (None, 0)]
    return {
        "total": len(results),
        "audited": len(completed),
        "pending": len(results) - len(completed),
        "balanced": len(completed) - len(with_variance),
        "with_variance": len(with_variance),
        "low_stock": sum(1 for r in results if is_low_stock(r.system_stock, r.min_stock)),
    }


# =============================================================================
# SESSION LOOKUP
# =============================================================================

def date_key(value=None) -> str:
    """'YYYY-MM-DD' for a date/str, or today in AUDIT_TIMEZONE when None."""
    if value is None:
        return local_today(current_app.config.get("AUDIT_TIMEZONE", "UTC")).isoformat()
    try:
        return parse_calendar_date(value).isoformat()
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def get_session(audit_date) -> AuditSession:
    key = date_key(audit_date)
    session = db.session.query(AuditSession).filter_by(audit_date=key).first()
    if session is None:
        raise NotFoundError(f"No audit session for {key}")
    return session


def _snapshot_row(session: AuditSession, stock: dict) -> AuditResult:
    return AuditResult(
        session_id=session.id,
        product_id=stock["id"],
        name=stock["name"],
        category=stock["category"],
        unit_tracked=stock["unit_tracked"],
        system_stock=stock["manual_stock"],
        ready_stock=stock["ready_stock"],
        min_stock=stock["min_stock"],
        physical_stock=None,
        scanned_unit_ids=[],
        status=AUDIT_PENDING,
    )


def _insert_result(session: AuditSession, stock: dict) -> AuditResult | None:
    """Add a pending row; None when another terminal inserted it first."""
    try:
        with db.session.begin_nested():
            result = _snapshot_row(session, stock)
            db.session.add(result)
        return result
    except IntegrityError:
        return None


def _fill_missing_results(session: AuditSession) -> int:
    existing = {
        pid for (pid,) in db.session.query(AuditResult.product_id).filter_by(session_id=session.id)
    }
    added = 0
    for stock in get_all_with_stock():
        if stock["id"] not in existing and _insert_result(session, stock) is not None:
            added += 1
    return added


def _get_result(session: AuditSession, product_id: int) -> AuditResult:
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError("product_id must be an integer")
    query = db.session.query(AuditResult).filter_by(session_id=session.id, product_id=product_id)
    result = query.first()
    if result is not None:
        return result

    # Product joined the catalog after the session started
    product = get_product(product_id, require_active=True)
    tagged, ready = unit_tallies([product.id]).get(product.id, (0, 0))
    stock = product.to_dict()
    stock["ready_stock"] = product.stock_figures(tagged, ready)[0]
    result = _insert_result(session, stock)
    if result is None:
        return query.one()
    return result


# =============================================================================
# OPERATIONS
# =============================================================================

def start_or_resume(audit_date=None) -> AuditSession:
    """
    Load the session for audit_date (default: today), creating it with a stock
    snapshot of every active product if it does not exist yet.
    """
    key = date_key(audit_date)

    def _op():
        created = False
        session = db.session.query(AuditSession).filter_by(audit_date=key).first()
        if session is None:
            try:
                with db.session.begin_nested():
                    session = AuditSession(audit_date=key)
                    db.session.add(session)
                created = True
            except IntegrityError:
                # Another terminal opened the same day first
                session = db.session.query(AuditSession).filter_by(audit_date=key).one()

        added = _fill_missing_results(session)
        db.session.commit()

        if created:
            current_app.logger.info("audit_session_created date=%s products=%d", key, added)
        elif added:
            current_app.logger.info("audit_session_resumed date=%s new_products=%d", key, added)
        return session

    return run_with_retry(_op, op_name="start_or_resume")


def select_product(audit_date, product_id: int) -> AuditResult:
    """Make product_id the one scans are counted against. Status is left as is."""
    def _op():
        session = get_session(audit_date)
        result = _get_result(session, product_id)
        session.current_product_id = product_id
        db.session.commit()
        return result

    return run_with_retry(_op, op_name="select_product")


def record_scan(audit_date, tag: str) -> AuditResult:
    """
    Count one scanned unit for the product under audit.

    Raises:
        AuditError: no product selected
        TagNotFoundError: no unit carries the tag
        TagMismatchError: unit belongs to another product
        UnitNotAvailableError: unit already sold
        ItemCompletedError: item finalized; reopen first
        DuplicateScanError: unit already counted (count unchanged)
    """
    def _op():
        session = get_session(audit_date)
        if session.current_product_id is None:
            raise AuditError("Select a product before scanning")

        match = find_by_tag(tag)
        if match is None:
            raise TagNotFoundError(f"Tag '{tag}' not found")
        if match.product.id != session.current_product_id:
            raise TagMismatchError(
                f"Tag belongs to '{match.product.name}', not the product under audit"
            )
        if match.unit.status != UNIT_IN_STOCK:
            raise UnitNotAvailableError(f"Unit {match.unit.id} is {match.unit.status}, not in stock")

        result = _get_result(session, session.current_product_id)
        if result.status == AUDIT_COMPLETED:
            raise ItemCompletedError(f"'{result.name}' is already completed; reopen it to scan again")

        scanned = list(result.scanned_unit_ids or [])
        if match.unit.id in scanned:
            raise DuplicateScanError(f"Unit {match.unit.id} was already scanned")

        # New list so the JSON column is flagged dirty
        result.scanned_unit_ids = scanned + [match.unit.id]
        result.physical_stock = len(result.scanned_unit_ids)
        db.session.commit()
        return result

    return run_with_retry(_op, op_name="record_scan")


def record_manual_count(audit_date, product_id: int, count: int) -> AuditResult:
    """Manual numeric count; completes the item immediately."""
    count = require_quantity(count, "count", allow_zero=True)

    def _op():
        session = get_session(audit_date)
        result = _get_result(session, product_id)
        result.physical_stock = count
        result.scanned_unit_ids = []
        result.status = AUDIT_COMPLETED
        db.session.commit()
        return result

    return run_with_retry(_op, op_name="record_manual_count")


def finalize_item(audit_date, product_id: int) -> AuditResult:
    """
    Close out scanning for one product. The count is kept as is; a tagged item
    with no scans is finalized as physically zero. A manual-stock item needs a
    count entered first. Finalizing twice is a no-op.
    """
    def _op():
        session = get_session(audit_date)
        result = _get_result(session, product_id)
        if result.status == AUDIT_COMPLETED:
            return result
        if result.physical_stock is None and not result.unit_tracked:
            raise AuditError(f"Enter a manual count for '{result.name}' before finalizing")
        if result.physical_stock is None:
            result.physical_stock = len(result.scanned_unit_ids or [])
        result.status = AUDIT_COMPLETED
        db.session.commit()
        return result

    return run_with_retry(_op, op_name="finalize_item")


def reopen_item(audit_date, product_id: int, policy: str | None = None) -> AuditResult:
    """
    Return a completed item to pending for a re-count.

    policy "reset" drops prior scans and the count; "append" keeps them so
    further scans add on top. Defaults to AUDIT_RESCAN_POLICY.
    """
    policy = policy or current_app.config.get("AUDIT_RESCAN_POLICY", RESCAN_RESET)
    if policy not in RESCAN_POLICIES:
        raise ValidationError(f"policy must be one of: {', '.join(RESCAN_POLICIES)}")

    def _op():
        session = get_session(audit_date)
        result = _get_result(session, product_id)
        if result.status != AUDIT_COMPLETED:
            return result

        if policy == RESCAN_RESET:
            result.scanned_unit_ids = []
            result.physical_stock = None
        result.status = AUDIT_PENDING
        db.session.commit()
        return result

    return run_with_retry(_op, op_name="reopen_item")


def get_session_view(audit_date, filter_name: str = FILTER_ALL) -> dict:
    session = get_session(audit_date)
    results = list(session.results)
    return {
        "session": session.to_dict(),
        "filter": filter_name,
        "summary": summarize(results),
        "results": [result_row(r) for r in filter_results(results, filter_name)],
    }


def close_session(audit_date) -> AuditReport:
    """
    Write an immutable numbered report (SA-000001, ...) of the session as it
    stands. The by-date session stays live and can be resumed and closed again.
    """
    def _op():
        session = get_session(audit_date)
        results = list(session.results)

        number, document_number = next_document_number(SEQUENCE_STOCK_AUDITS, "SA")
        report = AuditReport(
            id=number,
            document_number=document_number,
            audit_date=session.audit_date,
            session_id=session.id,
            summary=summarize(results),
            results=[result_row(r) for r in results],
        )
        db.session.add(report)
        session.last_closed_at = utcnow()
        db.session.commit()

        current_app.logger.info(
            "audit_session_closed date=%s report=%s audited=%d/%d",
            session.audit_date, document_number, report.summary["audited"], report.summary["total"],
        )
        return report

    return run_with_retry(_op, op_name="close_session")
