"""
Application layer - hotel booking service.

Orchestrates the booking lifecycle and defines the contracts (ports) the
infrastructure implements.

Layout:
- orchestrator.py: BookingOrchestrator, the booking / payment state driver
- validation.py: Pure reservation request validation
- use_cases/: Webhook handling, booking queries, guest data redaction
- dtos/: Data Transfer Objects and orchestrator results
- interfaces/: Ports (contracts for adapters)
"""

from hotel_booking.application.dtos import (
    BookingCreated,
    ExpiryReport,
    FinalizeOutcome,
    Identity,
    PaymentSetupFailed,
    ReservationRequest,
    ValidationFailure,
    ValidationIssue,
)
from hotel_booking.application.interfaces import (
    BookingStore,
    Clock,
    FakeClock,
    FakeUUIDGenerator,
    GatewayEvent,
    IdempotencyRecord,
    IdempotencyRepo,
    PaymentGateway,
    SessionHandle,
    SessionSnapshot,
    UUIDGenerator,
)

__all__ = [
    # DTOs
    "BookingCreated",
    "ExpiryReport",
    "FinalizeOutcome",
    "Identity",
    "PaymentSetupFailed",
    "ReservationRequest",
    "ValidationFailure",
    "ValidationIssue",
    # Interfaces - Repositories
    "BookingStore",
    "IdempotencyRecord",
    "IdempotencyRepo",
    # Interfaces - Gateways
    "GatewayEvent",
    "PaymentGateway",
    "SessionHandle",
    "SessionSnapshot",
    # Interfaces - Utilities
    "Clock",
    "FakeClock",
    "UUIDGenerator",
    "FakeUUIDGenerator",
]
