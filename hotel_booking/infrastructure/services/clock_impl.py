"""System clock implementation."""

from datetime import datetime, timezone

from hotel_booking.application.interfaces.clock import Clock


class ClockImpl(Clock):
    """
    Clock backed by the system time.

    For tests use FakeClock from application.interfaces.clock.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
