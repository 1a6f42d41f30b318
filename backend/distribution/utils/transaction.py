from __future__ import annotations
from contextlib import contextmanager
from sqlalchemy import Update
from sqlalchemy.orm import Session


@contextmanager
def atomic(session: Session):
    """Commit on success, roll back on any exception and re-raise.

    Services wrap each state-changing operation in this so load counters, assignment rows
    and order status are persisted together or not at all.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def compare_and_swap(session: Session, stmt: Update) -> bool:
    """Execute a guarded UPDATE; True if exactly one row matched its WHERE clause."""
    result = session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1

__all__ = ['atomic', 'compare_and_swap']
