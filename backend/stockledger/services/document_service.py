# Overview: Service-layer operations for document numbering; atomic named counters.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


SEQUENCE_SALES = "sales"
SEQUENCE_PROCUREMENTS = "procurements"
SEQUENCE_STOCK_AUDITS = "stockAudits"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_sequence_value(name: str) -> int:
    """
    Atomically allocate the next value of a named counter.

    Single UPDATE ... SET next_number = next_number + 1, so two writers can never
    read the same value. First use inserts the row inside a SAVEPOINT; losing
    that insert race falls back to the UPDATE without disturbing the caller's
    transaction.

    Runs inside the caller's transaction; does not commit.
    """
    if not name:
        raise DocumentSequenceError("sequence name is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.name == name)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(name=name, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError(f"could not allocate from sequence {name!r}")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(name=name)
        .scalar()
    )
    return current - 1


def next_document_number(name: str, prefix: str, pad: int = 6) -> tuple[int, str]:
    """Allocate (value, "PREFIX-000042") from a named counter."""
    value = next_sequence_value(name)
    return value, f"{prefix}-{value:0{pad}d}"
