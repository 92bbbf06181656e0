# Overview: Locking, retry and unit-of-work helpers shared by the ledger engines.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LockTimeout
from ..extensions import db
"""
Engine Locking Discipline (authoritative)

- Every engine operation runs under named locks acquired BEFORE validation
  and released AFTER commit, so a funds/stock check and the writes that
  depend on it are observed atomically by any other operation.
- Lock keys are tuples ranked so that wallet account keys always sort
  before stock keys: (0, "wallet", kind, id) < (1, "stock", location, sku).
- An operation takes at most one wallet key, then its stock keys in sorted
  order. Nested acquisition of a key already held by the thread is a no-op
  (locks are re-entrant), so composition cannot deadlock.
- Row-level SELECT ... FOR UPDATE is applied as well for databases that
  honor it; SQLite ignores it.
"""


def wallet_lock_key(kind: str, account_id: int) -> tuple:
    return (0, "wallet", kind, int(account_id))


def stock_lock_key(location_id: str, sku_id: int) -> tuple:
    return (1, "stock", str(location_id), int(sku_id))


class LockManager:
    """Process-wide registry of re-entrant named locks."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, threading.RLock] = {}

    def _lock_for(self, key: tuple) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys, *, timeout: float):
        acquired = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=timeout):
                    raise LockTimeout(f"Timed out waiting for lock {key}", key=list(key))
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


_manager_guard = threading.Lock()


def get_lock_manager() -> LockManager:
    with _manager_guard:
        manager = current_app.extensions.get("distro_locks")
        if manager is None:
            manager = LockManager()
            current_app.extensions["distro_locks"] = manager
        return manager


@contextmanager
def engine_locks(*keys):
    """Hold the given lock keys for the duration of the block."""
    timeout = current_app.config.get("LOCK_TIMEOUT_SECONDS", 10)
    with get_lock_manager().hold(keys, timeout=timeout):
        yield


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() refreshes rows already in the identity map.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Re-run a whole engine operation on concurrency-related failures.

    For callers only; engine operations never retry themselves. Retries on
    OperationalError (deadlocks, locks) and StaleDataError (optimistic
    locking conflicts). Each attempt is a fresh, fully validated call.
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
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def atomic(func):
    """
    Run func and commit its writes as one unit of work.

    One attempt only: any exception, including a storage conflict on commit,
    rolls the session back and propagates. Retrying is left to the caller
    (see run_with_retry).
    """
    try:
        result = func()
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        raise
