"""Infrastructure services."""

from hotel_booking.infrastructure.services.clock_impl import ClockImpl
from hotel_booking.infrastructure.services.uuid_generator_impl import UUIDGeneratorImpl

__all__ = [
    "ClockImpl",
    "UUIDGeneratorImpl",
]
