"""In-memory implementations for tests and local runs."""

from hotel_booking.infrastructure.in_memory.booking_store import InMemoryBookingStore
from hotel_booking.infrastructure.in_memory.idempotency_repo import InMemoryIdempotencyRepo
from hotel_booking.infrastructure.in_memory.payment_gateway import FakePaymentGateway, sign_payload

__all__ = [
    "InMemoryBookingStore",
    "InMemoryIdempotencyRepo",
    # Gateways
    "FakePaymentGateway",
    "sign_payload",
]
