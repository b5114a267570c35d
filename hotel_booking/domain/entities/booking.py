"""Booking entity - aggregate root of the domain."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from hotel_booking.domain.errors import InvalidTransitionError
from hotel_booking.domain.value_objects.money import Money
from hotel_booking.domain.value_objects.stay_period import StayPeriod

REDACTED = "[redacted]"


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.PAYMENT_FAILED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    # A failed payment can be retried (back to pending) or abandoned.
    BookingStatus.PAYMENT_FAILED: frozenset({BookingStatus.PENDING, BookingStatus.CANCELLED}),
}

PAID_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})


def can_transition(current: BookingStatus, new: BookingStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[BookingStatus(current)]


def ensure_transition(
    booking_id: str,
    current: BookingStatus,
    new: BookingStatus,
    payment_reference: str | None,
) -> None:
    """
    Raise InvalidTransitionError unless `current -> new` is legal.

    A paid status also needs a payment reference, either already stored or
    supplied with the transition.
    """
    current = BookingStatus(current)
    new = BookingStatus(new)
    if not can_transition(current, new):
        raise InvalidTransitionError(booking_id, current.value, new.value)
    if new in PAID_STATUSES and not payment_reference:
        raise InvalidTransitionError(booking_id, current.value, new.value)


@dataclass(frozen=True)
class RetryToken:
    """
    Structured marker left on a booking whose payment could not proceed.

    Tells the caller (or an operator) that the booking is saved and payment can
    be re-initiated with the same booking id.
    """

    reason: str
    error_code: str
    failed_at: datetime
    attempt: int = 1
    retryable: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "error_code": self.error_code,
            "failed_at": self.failed_at.isoformat(),
            "attempt": self.attempt,
            "retryable": self.retryable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RetryToken | None":
        if not data:
            return None
        return cls(
            reason=data["reason"],
            error_code=data["error_code"],
            failed_at=datetime.fromisoformat(data["failed_at"]),
            attempt=int(data.get("attempt", 1)),
            retryable=bool(data.get("retryable", True)),
        )


@dataclass
class Booking:
    """
    Durable record of a guest's intent to stay.

    Exists independently of whether payment has completed; it is never deleted,
    only cancelled or redacted.
    """

    # Identity
    id: str
    hotel_id: str

    # Stay
    start_date: date
    end_date: date
    total_price: Decimal
    currency: str
    adults: int = 1
    children: int = 0
    room_types: list[str] = field(default_factory=list)
    hotel_name: str | None = None
    destination_id: str | None = None

    # Guest contact
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    salutation: str | None = None
    phone: str | None = None
    message_to_hotel: str | None = None
    user_id: str | None = None

    # Lifecycle
    status: BookingStatus = BookingStatus.PENDING
    payment_reference: str | None = None
    retry_token: RetryToken | None = None
    revision: int = 0

    # Timestamps
    created_at: datetime | None = None
    updated_at: datetime | None = None
    redacted_at: datetime | None = None

    # === Derived properties ===

    @property
    def stay(self) -> StayPeriod:
        return StayPeriod(start=self.start_date, end=self.end_date)

    @property
    def nights(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def price(self) -> Money:
        return Money(amount=self.total_price, currency_code=self.currency)

    @property
    def guest_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_paid(self) -> bool:
        return self.status in PAID_STATUSES

    # === Business methods ===

    def is_owned_by(self, user_id: str, email: str) -> bool:
        """Bookings made while signed in belong to the user id, older ones to the email."""
        if self.user_id:
            return self.user_id == user_id
        return self.email.lower() == email.lower()

    def transitioned(
        self,
        new_status: BookingStatus,
        now: datetime,
        payment_reference: str | None = None,
        retry_token: RetryToken | None = None,
        clear_retry_token: bool = False,
    ) -> "Booking":
        """
        Return a copy advanced to `new_status` with the revision bumped.

        Raises InvalidTransitionError if the state machine does not allow it.
        """
        reference = payment_reference or self.payment_reference
        ensure_transition(self.id, self.status, new_status, reference)
        token = retry_token
        if token is None and not clear_retry_token:
            token = self.retry_token
        return replace(
            self,
            status=BookingStatus(new_status),
            payment_reference=reference,
            retry_token=token,
            revision=self.revision + 1,
            updated_at=now,
        )

    def redacted(self, now: datetime) -> "Booking":
        """Copy with personal data removed; ids, dates, amounts and lifecycle are kept."""
        return replace(
            self,
            first_name=REDACTED,
            last_name=REDACTED,
            email=REDACTED,
            salutation=None,
            phone=None,
            message_to_hotel=None,
            redacted_at=now,
            updated_at=now,
        )
