# Overview: Service-layer operations for concurrency; encapsulates locking, retries and commit boundaries.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Fixed pool of re-entrant locks; an entry maps to stripe entry_id % LOCK_STRIPES
LOCK_STRIPES = 64
_entry_locks = [threading.RLock() for _ in range(LOCK_STRIPES)]


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The per-entry locks below cover SQLite within one process.
    """
    return query.with_for_update()


def lock_stripe(entry_id: int) -> int:
    return int(entry_id) % LOCK_STRIPES


@contextmanager
def entry_locks(*entry_ids: int):
    """
    Serialize mutations per stock entry.

    Entries share a fixed set of lock stripes. Stripes are taken once each,
    in ascending order, so multi-entry operations (khata sales, returns)
    cannot deadlock against each other. Re-entrant, so an operation may
    call another locked operation on the same entry.
    """
    stripes = sorted({lock_stripe(i) for i in entry_ids if i is not None})
    acquired = []
    try:
        for stripe in stripes:
            lock = _entry_locks[stripe]
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()


def _retry_attempts() -> int:
    return int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate immediately.
    """
    if attempts is None:
        attempts = _retry_attempts()
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
                "Retrying ledger operation after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomically(func, *, entry_ids=()):
    """
    Run `func` as one all-or-nothing unit under the given entries' locks.

    Everything `func` adds or flushes is committed together; any exception
    rolls the whole session back before it propagates, so no partial state
    is ever visible to another session.
    """
    def _op():
        with entry_locks(*entry_ids):
            try:
                result = func()
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
            return result

    return run_with_retry(_op)
