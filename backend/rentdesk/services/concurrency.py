# Overview: Transaction and locking helpers shared by every mutating service operation.

from __future__ import annotations

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrentUpdateError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Bookings and orders also carry a version_id column, so a lost update is
    detected at flush time even where the lock is a no-op.
    """
    return query.with_for_update()


def run_atomic(func):
    """
    Run one service operation as a single transaction.

    Commits when func returns, rolls back on any exception so no partial
    ledger writes survive. Optimistic-lock failures surface as
    ConcurrentUpdateError; the operation is never retried here.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentUpdateError(
            "Record was modified by another request; reload and retry",
        ) from exc
    except Exception:
        db.session.rollback()
        raise
