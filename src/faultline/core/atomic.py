# src/faultline/core/atomic.py
"""Lock-guarded atomic cells used for every mutable slot in a stage tree.

Python has no hardware compare-and-set, so each cell serializes its
read-modify-write operations behind its own threading.Lock. Plain reads of
a reference are atomic under the interpreter, but they still go through the
lock so that a write is visible to every reader that starts after it.
"""

from __future__ import annotations

import threading


class Latch:
    """One-shot active -> fired transition.

    Usage:
        latch = Latch()
        if latch.try_fire():
            # this caller performed the transition
            ...
        latch.is_fired  # True from now on
    """

    __slots__ = ("_fired", "_lock")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    @property
    def is_fired(self) -> bool:
        with self._lock:
            return self._fired

    def try_fire(self) -> bool:
        """Fire the latch.

        Returns:
            True for exactly one caller (the one that moved the latch from
            active to fired); False for every other caller.
        """
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True


class AtomicReference[T]:
    """A reference cell with atomic get/set/compare_and_set."""

    __slots__ = ("_lock", "_value")

    def __init__(self, value: T) -> None:
        self._lock = threading.Lock()
        self._value = value

    def get(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> T:
        """Replace the value, returning the previous one."""
        with self._lock:
            previous = self._value
            self._value = value
            return previous

    def compare_and_set(self, expected: T, value: T) -> bool:
        """Install value only if the cell still holds expected (by identity).

        Returns:
            True if the value was installed.
        """
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True
