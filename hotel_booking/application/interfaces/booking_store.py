from datetime import datetime
from typing import Sequence

from hotel_booking.domain.entities.booking import Booking, BookingStatus, RetryToken
from hotel_booking.domain.entities.payment_session import (
    PaymentSession,
    SessionPaymentStatus,
    SessionStatus,
)


class BookingStore:
    """
    Durable booking records plus the session -> booking idempotency index.

    `compare_and_set_status` is the only way a status changes, and the
    (id, revision) check it performs is the sole serialization point between
    concurrent callers.
    """

    async def insert(self, booking: Booking) -> None:
        raise NotImplementedError

    async def compare_and_set_status(
        self,
        booking_id: str,
        expected_revision: int,
        new_status: BookingStatus,
        payment_reference: str | None = None,
        retry_token: RetryToken | None = None,
        clear_retry_token: bool = False,
    ) -> Booking:
        raise NotImplementedError

    async def record_retry_token(self, booking_id: str, retry_token: RetryToken | None) -> None:
        raise NotImplementedError

    async def find_by_id(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    async def find_by_email(self, email: str) -> Sequence[Booking]:
        raise NotImplementedError

    async def find_pending_created_before(self, cutoff: datetime) -> Sequence[Booking]:
        raise NotImplementedError

    async def redact_guest_data(self, email: str, redacted_at: datetime) -> int:
        raise NotImplementedError

    # === Idempotency index ===

    async def record_session(self, session: PaymentSession) -> None:
        raise NotImplementedError

    async def find_booking_id_by_session(self, session_id: str) -> str | None:
        raise NotImplementedError

    async def find_session(self, session_id: str) -> PaymentSession | None:
        raise NotImplementedError

    async def latest_session(self, booking_id: str) -> PaymentSession | None:
        raise NotImplementedError

    async def update_session_snapshot(
        self,
        session_id: str,
        status: SessionStatus,
        payment_status: SessionPaymentStatus,
        external_payment_id: str | None = None,
    ) -> None:
        raise NotImplementedError
