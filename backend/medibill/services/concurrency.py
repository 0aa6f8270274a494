# Overview: Transaction boundaries, write locks and retry for ledger mutations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction covers it there.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock before the first read of a unit of work.

    On SQLite this issues BEGIN IMMEDIATE so two writers queue on the lock
    instead of both reading stale stock and deadlocking on upgrade. A no-op
    when the connection already holds a transaction, and on other dialects.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    dbapi_connection = connection.connection.dbapi_connection
    if getattr(dbapi_connection, "in_transaction", False):
        return
    connection.exec_driver_sql("BEGIN IMMEDIATE")


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = int(config.get("DB_RETRY_ATTEMPTS", 3))
    if backoff_base is None:
        backoff_base = float(config.get("DB_RETRY_BACKOFF", 0.1))
    return max(attempts, 1), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locked database, deadlocks) and StaleDataError.
    The session is rolled back between attempts so each attempt starts clean.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying unit of work after %s (attempt %s/%s)",
                type(exc).__name__,
                attempt + 1,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run `func` as one unit of work.

    Commits when `func` returns; rolls back every write on any exception and
    re-raises it. Lock contention is retried from the top.
    """
    def _unit():
        begin_write_transaction()
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_unit, attempts=attempts, backoff_base=backoff_base)
