"""
Infrastructure layer of the hotel booking service.

Concrete implementations of the application ports.

Layout:
- db/: SQL booking store, idempotency keys and engine setup
- gateways/: Stripe Checkout adapter
- in_memory/: In-memory implementations for tests and local runs
- services/: Infrastructure services (Clock, UUID)
"""

# Database
from hotel_booking.infrastructure.db.repositories.booking_store_sql import BookingStoreSQL
from hotel_booking.infrastructure.db.repositories.idempotency_repo_sql import IdempotencyRepoSQL

# Gateways
from hotel_booking.infrastructure.gateways.stripe_gateway import StripePaymentGateway

# In-Memory (for testing)
from hotel_booking.infrastructure.in_memory import (
    FakePaymentGateway,
    InMemoryBookingStore,
    InMemoryIdempotencyRepo,
)

# Services
from hotel_booking.infrastructure.services import ClockImpl, UUIDGeneratorImpl

__all__ = [
    # Database
    "BookingStoreSQL",
    "IdempotencyRepoSQL",
    # Gateways
    "StripePaymentGateway",
    # In-Memory
    "FakePaymentGateway",
    "InMemoryBookingStore",
    "InMemoryIdempotencyRepo",
    # Services
    "ClockImpl",
    "UUIDGeneratorImpl",
]
