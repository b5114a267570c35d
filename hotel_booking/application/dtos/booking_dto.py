from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from hotel_booking.domain.entities.booking import Booking, BookingStatus, RetryToken


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    code: str
    message: str


@dataclass
class ReservationRequest:
    hotel_id: str
    start_date: date
    end_date: date
    total_price: Decimal
    currency: str
    first_name: str
    last_name: str
    email: str
    adults: int = 1
    children: int = 0
    room_types: list[str] = field(default_factory=list)
    hotel_name: str | None = None
    destination_id: str | None = None
    salutation: str | None = None
    phone: str | None = None
    message_to_hotel: str | None = None


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as supplied by the identity provider."""

    user_id: str
    email: str


# === Orchestrator results ===


@dataclass
class BookingCreated:
    booking_id: str
    session_id: str
    redirect_url: str
    status: BookingStatus = BookingStatus.PENDING


@dataclass
class ValidationFailure:
    issues: list[ValidationIssue]

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]


@dataclass
class PaymentSetupFailed:
    """The booking is saved but no payment session could be opened."""

    booking_id: str
    retry_token: RetryToken
    error: Exception
    status: BookingStatus = BookingStatus.PENDING

    @property
    def retryable(self) -> bool:
        return self.retry_token.retryable


@dataclass
class FinalizeOutcome:
    booking_id: str
    session_id: str
    status: BookingStatus
    payment_reference: str | None
    paid: bool
    transitioned: bool

    @classmethod
    def from_booking(
        cls, booking: Booking, session_id: str, paid: bool, transitioned: bool
    ) -> "FinalizeOutcome":
        return cls(
            booking_id=booking.id,
            session_id=session_id,
            status=booking.status,
            payment_reference=booking.payment_reference,
            paid=paid,
            transitioned=transitioned,
        )


@dataclass
class ExpiryReport:
    expired: list[str] = field(default_factory=list)
    confirmed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
