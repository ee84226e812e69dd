# Overview: Concurrency helpers: row locks, bounded retry, and conditional status transitions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
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


def transition_status(
    model,
    *,
    org_id: int,
    row_id: int,
    from_status: str,
    to_status: str,
    extra: dict | None = None,
    where: tuple = (),
) -> bool:
    """
    Compare-and-set a status column:
        UPDATE <table> SET status=:to WHERE id=:id AND org_id=:org AND status=:from

    Returns True when exactly one row moved. Does not commit; callers own
    the transaction so several transitions can succeed or fail together.
    `where` adds further guards (e.g. payout_id IS NULL).
    """
    values = {model.status: to_status}
    for key, value in (extra or {}).items():
        values[getattr(model, key)] = value

    rowcount = (
        db.session.query(model)
        .filter(
            model.id == row_id,
            model.org_id == org_id,
            model.status == from_status,
            *where,
        )
        .update(values, synchronize_session="fetch")
    )
    return rowcount == 1
