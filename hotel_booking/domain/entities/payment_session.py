"""PaymentSession entity - local snapshot of a gateway checkout session."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SessionStatus(str, Enum):
    """Checkout session state as reported by the gateway."""

    OPEN = "open"
    COMPLETE = "complete"
    EXPIRED = "expired"


class SessionPaymentStatus(str, Enum):
    """Payment state of a checkout session."""

    PAID = "paid"
    UNPAID = "unpaid"
    NO_PAYMENT_REQUIRED = "no_payment_required"


@dataclass
class PaymentSession:
    """
    One checkout attempt for a booking.

    The gateway owns the session; this record only keeps the session -> booking
    correlation and the last status seen.
    """

    session_id: str
    booking_id: str
    attempt: int = 1
    redirect_url: str | None = None
    status: SessionStatus = SessionStatus.OPEN
    payment_status: SessionPaymentStatus = SessionPaymentStatus.UNPAID
    external_payment_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_live(self) -> bool:
        return self.status == SessionStatus.OPEN

    @property
    def is_paid(self) -> bool:
        return self.payment_status in (
            SessionPaymentStatus.PAID,
            SessionPaymentStatus.NO_PAYMENT_REQUIRED,
        )
