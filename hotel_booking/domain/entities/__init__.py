"""Domain entities."""

from hotel_booking.domain.entities.booking import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    Booking,
    BookingStatus,
    RetryToken,
    can_transition,
    ensure_transition,
)
from hotel_booking.domain.entities.payment_session import (
    PaymentSession,
    SessionPaymentStatus,
    SessionStatus,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "Booking",
    "BookingStatus",
    "PaymentSession",
    "RetryToken",
    "SessionPaymentStatus",
    "SessionStatus",
    "can_transition",
    "ensure_transition",
]
