"""Injectable wall clock.

All persisted timestamps are naive UTC so values compare the same way on SQLite and
PostgreSQL. Anything with a ``now()`` method returning such a datetime can stand in for
``SystemClock`` (tests advance a manual clock instead of sleeping).
"""
from __future__ import annotations
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    def now(self) -> datetime:
        return utcnow()

__all__ = ['SystemClock', 'utcnow']
