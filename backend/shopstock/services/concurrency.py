# Overview: Service-layer operations for concurrency; serialization and retry helpers for stock writes.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


_registry_lock = threading.Lock()
# product_id -> [RLock, number of callers holding or waiting for it]
_product_locks: dict[int, list] = {}


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _checkout(product_id: int) -> threading.RLock:
    with _registry_lock:
        entry = _product_locks.get(product_id)
        if entry is None:
            entry = [threading.RLock(), 0]
            _product_locks[product_id] = entry
        entry[1] += 1
        return entry[0]


def _checkin(product_id: int) -> None:
    with _registry_lock:
        entry = _product_locks[product_id]
        entry[1] -= 1
        if entry[1] == 0:
            del _product_locks[product_id]


@contextmanager
def product_locks(product_ids: Iterable[int]):
    """
    Hold the in-process mutex of every product in product_ids.

    Locks are taken in ascending id order so two multi-item operations can
    never deadlock each other. Locks are re-entrant: an orchestrator holding
    the locks for a whole sale can call the ledger engine, which takes the
    same product lock again.

    Registry entries live only while some caller holds or waits on them, so
    the registry is bounded by the number of products in flight.
    """
    ids = sorted(set(product_ids))
    checked_out = []
    acquired = []
    try:
        for pid in ids:
            lock = _checkout(pid)
            checked_out.append(pid)
            lock.acquire()
            acquired.append(lock)
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()
        for pid in reversed(checked_out):
            _checkin(pid)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF", 0.1)

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
                "Retrying stock operation after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
