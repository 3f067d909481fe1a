# Overview: Row locking and bounded retry for read-modify-write stock operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

_LOCK_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock wait timeout")


class ConcurrentModificationError(RuntimeError):
    """A lost-update race persisted through every retry; transient, safe to resubmit."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    compare-and-swap is what detects the race.
    """
    return query.with_for_update()


def is_lock_conflict(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB read-modify-write with retry on concurrency conflicts.

    Retries on StaleDataError (optimistic version_id mismatch) and on
    OperationalError that signal lock contention. Each retry starts from a
    rolled-back session so func re-reads current state. When attempts run
    out, ConcurrentModificationError is raised.

    Any other exception rolls the session back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("STOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("STOCK_RETRY_BACKOFF", 0.05)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (StaleDataError, OperationalError) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and not is_lock_conflict(exc):
                raise
            if attempt >= attempts - 1:
                current_app.logger.error("Concurrent modification persisted after %d attempts: %s", attempts, exc)
                raise ConcurrentModificationError(
                    f"concurrent modification detected; gave up after {attempts} attempts"
                ) from exc
            current_app.logger.warning(
                "Concurrent modification detected (attempt %d/%d), retrying", attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
