"""
Injectable clocks.

Jobs, services and the dispatcher receive a Clock instead of calling
``datetime.now()`` themselves, so a run can be replayed at a fixed instant.
Shop-floor timestamps are naive local wall-clock times, and so is every
value returned here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current local time (naive)."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class DeterministicClock(Clock):
    """
    Clock frozen at ``fixed_time`` until moved with ``advance``.

    Used by the tests and for re-running a past day with its original
    timestamps.
    """

    def __init__(self, fixed_time: datetime):
        self._now = fixed_time

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> None:
        self._now += timedelta(seconds=seconds)
