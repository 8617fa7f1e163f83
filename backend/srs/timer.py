"""Pausable stopwatch and per-group countdown.

Both are passive: they store reference timestamps and the time already
accumulated before a pause, and compute readings from a supplied ``now``.
The host's event loop calls ``tick`` on the engine to refresh displays.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Stopwatch:
    """Elapsed time that freezes while paused."""

    started_at: datetime | None = None
    accumulated: float = 0.0  # seconds banked before the last pause
    running: bool = False

    def start(self, now: datetime) -> None:
        self.started_at = now
        self.accumulated = 0.0
        self.running = True

    def pause(self, now: datetime) -> None:
        if not self.running or self.started_at is None:
            return
        self.accumulated += (now - self.started_at).total_seconds()
        self.started_at = None
        self.running = False

    def resume(self, now: datetime) -> None:
        if self.running:
            return
        self.started_at = now
        self.running = True

    def stop(self, now: datetime) -> None:
        self.pause(now)

    def elapsed(self, now: datetime) -> float:
        """Return elapsed seconds, excluding paused intervals."""
        if self.running and self.started_at is not None:
            return self.accumulated + (now - self.started_at).total_seconds()
        return self.accumulated


@dataclass
class CountdownReading:
    elapsed: int
    budget: int
    overtime: bool

    @property
    def text(self) -> str:
        if self.overtime:
            return f"overtime +{self.elapsed - self.budget}s"
        return f"{self.elapsed}s"


@dataclass
class GroupCountdown:
    """Counts up against a per-group budget; exceeding it never blocks."""

    budget: int  # seconds, page size * speed per word
    stopwatch: Stopwatch

    @classmethod
    def begin(cls, budget: int, now: datetime) -> "GroupCountdown":
        stopwatch = Stopwatch()
        stopwatch.start(now)
        return cls(budget=budget, stopwatch=stopwatch)

    def read(self, now: datetime) -> CountdownReading:
        elapsed = int(self.stopwatch.elapsed(now))
        return CountdownReading(elapsed=elapsed, budget=self.budget, overtime=elapsed > self.budget)
