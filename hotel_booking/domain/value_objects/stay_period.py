"""StayPeriod value object - check-in / check-out dates of a hotel stay."""

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class StayPeriod:
    """
    Immutable date range of a stay.

    Attributes:
        start: Check-in date.
        end: Check-out date (exclusive night).
    """

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"start must be before end: {self.start} >= {self.end}")

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def __str__(self) -> str:
        return f"{self.start.isoformat()} -> {self.end.isoformat()}"
