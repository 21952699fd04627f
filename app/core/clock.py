"""
Injectable time source.

All SLA windows and audit timestamps are computed from a Clock so that sweeps
and dispatches can be run against fixed instants in tests and admin tooling.
Timestamps are naive UTC throughout, matching the DateTime columns.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall-clock time source."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock(Clock):
    """Clock frozen at a given instant; advance it explicitly."""

    def __init__(self, instant: datetime):
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta kwargs (hours=1, minutes=10, ...)."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant


system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock (overridden in tests)."""
    return system_clock
