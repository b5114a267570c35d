"""Domain value objects."""

from hotel_booking.domain.value_objects.money import Money
from hotel_booking.domain.value_objects.stay_period import StayPeriod

__all__ = [
    "Money",
    "StayPeriod",
]
