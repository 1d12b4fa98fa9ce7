# Overview: Service-layer helpers for row locking, write transactions and retry on contention.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write_transaction(session) -> None:
    """
    Open the write transaction eagerly.

    SQLite only takes its write lock at the first DML statement, which lets
    two checkouts both read and then race for the lock. BEGIN IMMEDIATE takes
    it up front. Other dialects rely on row locks and conditional writes.
    """
    conn = session.connection()
    if conn.dialect.name != "sqlite":
        return
    raw = conn.connection.dbapi_connection
    if not raw.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock-wait timeouts, busy database)
    and StaleDataError (optimistic locking conflicts). The session is rolled
    back before every retry; the last error is re-raised once attempts run out.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.info("Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                        type(exc).__name__, attempt + 1, attempts, delay)
            time.sleep(delay)
    if last_exc:
        raise last_exc
