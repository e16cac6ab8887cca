# Overview: Service-layer operations for concurrency; row locks, per-branch ledger locks and retry.

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


class ConcurrencyConflictError(Exception):
    """Raised when a serializing lock could not be acquired within the bounded wait."""


_branch_locks: dict[int, threading.Lock] = {}
_branch_locks_guard = threading.Lock()


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _lock_timeout() -> float:
    if has_app_context():
        return float(current_app.config.get("LEDGER_LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT_SECONDS))
    return DEFAULT_LOCK_TIMEOUT_SECONDS


def _get_branch_lock(branch_id: int) -> threading.Lock:
    with _branch_locks_guard:
        lock = _branch_locks.get(branch_id)
        if lock is None:
            lock = threading.Lock()
            _branch_locks[branch_id] = lock
        return lock


@contextmanager
def branch_lock(branch_id: int, *, timeout: float | None = None):
    """
    Serialize ledger writers for one branch within this process.

    Holders must commit before leaving the block: the next holder reads the
    latest running balance and must see the previous insert. Cross-process
    writers are serialized by the FOR UPDATE lock on the branch row taken
    inside the block.

    Raises ConcurrencyConflictError when the lock is not acquired in time.
    """
    wait = _lock_timeout() if timeout is None else timeout
    lock = _get_branch_lock(branch_id)
    if not lock.acquire(timeout=wait):
        raise ConcurrencyConflictError(
            f"Ledger for branch {branch_id} is busy; lock not acquired within {wait:.1f}s"
        )
    try:
        yield
    finally:
        lock.release()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and ConcurrencyConflictError (branch
    ledger lock contention).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrencyConflictError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
