"""
Injectable time source.

Services take a ``Clock`` in their constructor and read "today" from it;
engines never read a clock at all, they are handed ``as_of``.  Tests pin
time with ``DeterministicClock`` so that lateness, approach windows and
the one-snapshot-per-day rule are reproducible.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Calendar date of ``now()``; the ``as_of`` of a recalculation."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    ``now()`` is stable between calls.  ``advance`` and ``advance_days``
    move it forward; ``set_time`` jumps to an absolute instant.
    """

    _DEFAULT_START = datetime(2025, 1, 1, 12, 0, 0)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or self._DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
