"""
Clocks used to evaluate phase windows.
"""

import time
from threading import Lock


class SystemClock:
    """Wall-clock time in whole epoch seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """A clock that only moves when told to; used in tests and simulations."""

    def __init__(self, start: int = 0):
        self._now = int(start)
        self._lock = Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        """Move forward and return the new time."""
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        with self._lock:
            self._now += int(seconds)
            return self._now
