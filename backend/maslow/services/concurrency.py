# Overview: Service-layer primitives for contended rows; conditional updates and row locks.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def conditional_update(model, criteria: list, values: dict) -> int:
    """
    Execute a single compare-and-set UPDATE and return the matched row count.

    The WHERE clause carries the expected current state, so the check and
    the write happen in one statement: of N concurrent callers expecting the
    same state, exactly one sees rowcount == 1. Pending ORM changes are
    flushed first and loaded instances are expired afterwards so later reads
    in the same session observe the new values.
    """
    db.session.flush()
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.expire_all()
    return result.rowcount
