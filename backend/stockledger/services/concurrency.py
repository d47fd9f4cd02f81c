# Overview: Service-layer helpers for concurrency; retry of optimistic-lock conflicts and storage error wrapping.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


class StorageError(RuntimeError):
    """Backing store failed; message names the operation, original error is chained."""


class ConcurrentUpdateError(ConflictError):
    """Optimistic-lock conflict persisted after all retries."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, op_name: str, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB operation as one unit of work.

    - StaleDataError (optimistic locking conflict): rollback, back off, re-run func.
    - Any other SQLAlchemyError: rollback, raise StorageError naming op_name. Not retried.
    - Any other exception: rollback, re-raise unchanged.

    func must be safe to re-run from scratch (it re-reads everything it needs).
    """
    if attempts is None:
        attempts = int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))

    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConcurrentUpdateError(
                    f"{op_name}: record changed concurrently, please retry"
                ) from exc
            current_app.logger.info("%s: optimistic lock conflict, retry %d", op_name, attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f"{op_name} failed: {exc.__class__.__name__}: {exc}") from exc
        except Exception:
            db.session.rollback()
            raise
