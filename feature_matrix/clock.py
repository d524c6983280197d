"""
Feature Matrix - Clock.

============================================================
RESPONSIBILITY
============================================================
Time source for cache expiry.

- Caches read time only through a clock
- MockClock lets tests move time past the TTL

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


class ClockProtocol(ABC):
    """Abstract interface for a UTC clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass


class SystemClock(ClockProtocol):
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = initial_time or datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (minutes, hours, ...)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


_default_clock: ClockProtocol = SystemClock()


def get_clock() -> ClockProtocol:
    """Get the process-wide clock."""
    return _default_clock


def set_clock(clock: ClockProtocol) -> None:
    """Replace the process-wide clock."""
    global _default_clock
    _default_clock = clock
