"""Clock port - abstracts the system time."""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """
    Port for the system time.

    Lets tests inject a fixed clock so "today" checks are deterministic.
    """

    @abstractmethod
    def now(self) -> datetime:
        """
        Current date/time.

        Returns:
            timezone-aware datetime in UTC.
        """
        raise NotImplementedError

    def today(self) -> date:
        """Current calendar date (UTC)."""
        return self.now().date()


class FakeClock(Clock):
    """
    Fixed clock for tests.

    Time only moves when the test asks it to.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, new_time: datetime) -> None:
        self._fixed_time = new_time

    def advance(self, seconds: int = 0, minutes: int = 0, hours: int = 0, days: int = 0) -> None:
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours, days=days)
        self._fixed_time = self._fixed_time + delta
