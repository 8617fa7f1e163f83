"""Time sources for the session engine and scheduler.

Hosts pass a clock in rather than letting the core read wall-clock time,
so timers and schedules can be driven deterministically.
"""

from datetime import datetime, timedelta
from typing import Protocol

from backend.config import utcnow


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as a naive UTC datetime."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return utcnow()


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or utcnow()

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a ``timedelta(**kwargs)`` and return the new time."""
        self._now += timedelta(**kwargs)
        return self._now

    def set(self, when: datetime) -> None:
        self._now = when
