"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()`` so that
finalize/void stamps, ledger ``created_at`` and cache expiry can be driven
from tests.
"""

import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""

    def today(self) -> date:
        return self.now().date()

    def monotonic(self) -> float:
        """Seconds for TTL arithmetic."""
        return self.now().timestamp()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicClock(Clock):
    """Frozen clock; moves only through ``advance`` and ``set_time``."""

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)
