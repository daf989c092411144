# Overview: Row locking and retry helpers for read-modify-write operations.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import PersistenceError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version_id checks still catch lost updates there.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must re-read the rows it mutates.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_or_raise(message: str = "Please try again") -> None:
    """
    Commit the session; on a non-retryable SQLAlchemy failure roll back and
    raise PersistenceError so routes can answer with a generic 500.

    OperationalError/StaleDataError propagate so an enclosing
    run_with_retry() can replay the whole unit of work.
    """
    try:
        db.session.commit()
    except (OperationalError, StaleDataError):
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(message) from exc


def run_unit_of_work(func, *, attempts: int = 3, message: str = "Please try again"):
    """
    run_with_retry() for a complete read-modify-write; once retries are
    exhausted the failure surfaces as PersistenceError.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise PersistenceError(message) from exc
