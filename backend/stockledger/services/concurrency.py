# Overview: Service-layer helpers for row locking, retries and commits.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for balance-changing operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the item version
    column (optimistic locking) catches concurrent writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locked database, deadlocks) and
    StaleDataError (optimistic locking conflicts). When every attempt
    fails the error is surfaced as StorageError so callers can retry later
    without knowing about SQLAlchemy.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("storage operation failed after %d attempts: %s", attempts, exc)
                raise StorageError(f"Storage unavailable, retry later: {exc}") from exc
            time.sleep(backoff_base * (2 ** attempt))

