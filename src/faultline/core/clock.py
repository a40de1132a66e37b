# src/faultline/core/clock.py
"""Clock abstraction for time-based triggers.

Production code uses SystemClock (the default). Tests inject FixedClock to
control time without sleeping.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract wall clock."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Production clock using the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Controllable clock for deterministic testing.

    Example:
        clock = FixedClock(datetime(1970, 1, 1, tzinfo=UTC))
        trigger = Deadline(clock.now() + timedelta(seconds=5), clock=clock)
        assert not trigger.matches(request)
        clock.advance(timedelta(seconds=6))
        assert trigger.matches(request)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start if start is not None else datetime(1970, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> None:
        """Move the clock forward by delta."""
        self._current = self._current + delta


DEFAULT_CLOCK: Clock = SystemClock()
