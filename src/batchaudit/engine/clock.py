# src/batchaudit/engine/clock.py
"""Clock abstraction for retry timing.

Production code uses SystemClock. Tests inject MockClock and a sleep function
that advances it, so backoff schedules and elapsed-time reporting can be
asserted without real sleeping.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source for elapsed-time measurement."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds. Never goes backwards."""
        ...


class SystemClock:
    """Production clock using time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = MockClock()
        policy = PersistenceRetryPolicy(config, clock=clock, sleep=clock.advance)
        # Each backoff now advances mock time instead of blocking
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self._current

    def advance(self, seconds: float) -> None:
        """Advance mock time and record the step.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self.sleeps.append(seconds)
        self._current += seconds


DEFAULT_CLOCK: Clock = SystemClock()
