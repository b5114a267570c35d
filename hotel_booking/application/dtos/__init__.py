"""Data transfer objects of the application layer."""

from hotel_booking.application.dtos.booking_dto import (
    BookingCreated,
    ExpiryReport,
    FinalizeOutcome,
    Identity,
    PaymentSetupFailed,
    ReservationRequest,
    ValidationFailure,
    ValidationIssue,
)

__all__ = [
    "BookingCreated",
    "ExpiryReport",
    "FinalizeOutcome",
    "Identity",
    "PaymentSetupFailed",
    "ReservationRequest",
    "ValidationFailure",
    "ValidationIssue",
]
