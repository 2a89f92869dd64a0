# Overview: Transaction boundaries and retry handling shared by every engine operation.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import DuplicateKey
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the write lock taken by
    begin_write() serializes writers instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    On SQLite, take the database write lock up front (BEGIN IMMEDIATE) so two
    writers cannot both read the same stock and then race on the update.
    No-op on other dialects and when a DBAPI transaction is already open.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.driver_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def _is_unique_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


@contextmanager
def unit_of_work():
    """
    One atomic unit: everything flushed inside the block commits together or
    is rolled back together. The exception is always re-raised; unique
    constraint violations surface as DuplicateKey.
    """
    begin_write()
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _is_unique_violation(exc):
            raise DuplicateKey("Duplicate value for a unique field", {"detail": str(exc.orig)}) from exc
        raise
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate on first raise.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after concurrency failure (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """Run func inside unit_of_work(), re-running the whole unit on lock conflicts."""
    def _op():
        with unit_of_work():
            return func()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
