"""Ports consumed by the application layer."""

from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock, FakeClock
from hotel_booking.application.interfaces.idempotency_repo import IdempotencyRecord, IdempotencyRepo
from hotel_booking.application.interfaces.payment_gateway import (
    GatewayEvent,
    PaymentGateway,
    SessionHandle,
    SessionSnapshot,
)
from hotel_booking.application.interfaces.uuid_generator import FakeUUIDGenerator, UUIDGenerator

__all__ = [
    "BookingStore",
    "Clock",
    "FakeClock",
    "FakeUUIDGenerator",
    "GatewayEvent",
    "IdempotencyRecord",
    "IdempotencyRepo",
    "PaymentGateway",
    "SessionHandle",
    "SessionSnapshot",
    "UUIDGenerator",
]
