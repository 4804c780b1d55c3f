# Overview: Concurrency helpers for service-layer database work.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def compare_and_swap(model, *, match: dict, expected: dict, values: dict) -> bool:
    """
    Conditional UPDATE: write values only if the row still holds expected.

    Returns True when exactly one row was updated. False means another writer
    changed the row since it was read (or it no longer matches at all); the
    caller re-reads and decides whether to try again.

    Identity-map instances are not synchronized; refresh them after a swap.
    """
    criteria = [getattr(model, k) == v for k, v in match.items()]
    criteria += [getattr(model, k) == v for k, v in expected.items()]
    stmt = (
        update(model)
        .where(*criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1

