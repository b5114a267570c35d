import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Sequence

from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock
from hotel_booking.domain.entities.booking import Booking, BookingStatus, RetryToken
from hotel_booking.domain.entities.payment_session import (
    PaymentSession,
    SessionPaymentStatus,
    SessionStatus,
)
from hotel_booking.domain.errors import (
    BookingNotFoundError,
    DuplicateIdError,
    DuplicateSessionError,
    StaleRevisionError,
)
from hotel_booking.infrastructure.services.clock_impl import ClockImpl


class InMemoryBookingStore(BookingStore):
    """
    Process-local BookingStore.

    Every mutation runs under one asyncio.Lock, so the revision check and the
    write of `compare_and_set_status` are atomic for callers in the same loop.
    Stored objects are copied on the way in and out.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or ClockImpl()
        self._lock = asyncio.Lock()
        self.bookings: dict[str, Booking] = {}
        self.sessions: dict[str, PaymentSession] = {}

    async def insert(self, booking: Booking) -> None:
        async with self._lock:
            if booking.id in self.bookings:
                raise DuplicateIdError(booking.id)
            self.bookings[booking.id] = replace(booking, room_types=list(booking.room_types))

    async def compare_and_set_status(
        self,
        booking_id: str,
        expected_revision: int,
        new_status: BookingStatus,
        payment_reference: str | None = None,
        retry_token: RetryToken | None = None,
        clear_retry_token: bool = False,
    ) -> Booking:
        async with self._lock:
            current = self.bookings.get(booking_id)
            if current is None:
                raise BookingNotFoundError(booking_id)
            if current.revision != expected_revision:
                raise StaleRevisionError(booking_id, expected_revision, current.revision)
            updated = current.transitioned(
                new_status,
                now=self._clock.now(),
                payment_reference=payment_reference,
                retry_token=retry_token,
                clear_retry_token=clear_retry_token,
            )
            self.bookings[booking_id] = updated
            return replace(updated)

    async def record_retry_token(self, booking_id: str, retry_token: RetryToken | None) -> None:
        async with self._lock:
            current = self.bookings.get(booking_id)
            if current is None:
                raise BookingNotFoundError(booking_id)
            self.bookings[booking_id] = replace(
                current, retry_token=retry_token, updated_at=self._clock.now()
            )

    async def find_by_id(self, booking_id: str) -> Booking | None:
        booking = self.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def find_by_email(self, email: str) -> Sequence[Booking]:
        wanted = email.strip().lower()
        found = [replace(b) for b in self.bookings.values() if b.email.lower() == wanted]
        return sorted(found, key=lambda b: b.created_at or datetime.min, reverse=True)

    async def find_pending_created_before(self, cutoff: datetime) -> Sequence[Booking]:
        return [
            replace(b)
            for b in self.bookings.values()
            if b.status == BookingStatus.PENDING and b.created_at is not None and b.created_at < cutoff
        ]

    async def redact_guest_data(self, email: str, redacted_at: datetime) -> int:
        wanted = email.strip().lower()
        async with self._lock:
            matches = [b for b in self.bookings.values() if b.email.lower() == wanted]
            for booking in matches:
                self.bookings[booking.id] = booking.redacted(redacted_at)
            return len(matches)

    # === Idempotency index ===

    async def record_session(self, session: PaymentSession) -> None:
        async with self._lock:
            if session.booking_id not in self.bookings:
                raise BookingNotFoundError(session.booking_id)
            existing = self.sessions.get(session.session_id)
            if existing is not None:
                if existing.booking_id != session.booking_id:
                    raise DuplicateSessionError(
                        session.session_id, session.booking_id, existing.booking_id
                    )
                return
            self.sessions[session.session_id] = replace(session)

    async def find_booking_id_by_session(self, session_id: str) -> str | None:
        session = self.sessions.get(session_id)
        return session.booking_id if session else None

    async def find_session(self, session_id: str) -> PaymentSession | None:
        session = self.sessions.get(session_id)
        return replace(session) if session else None

    async def latest_session(self, booking_id: str) -> PaymentSession | None:
        candidates = [s for s in self.sessions.values() if s.booking_id == booking_id]
        if not candidates:
            return None
        return replace(max(candidates, key=lambda s: s.attempt))

    async def update_session_snapshot(
        self,
        session_id: str,
        status: SessionStatus,
        payment_status: SessionPaymentStatus,
        external_payment_id: str | None = None,
    ) -> None:
        async with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                return
            self.sessions[session_id] = replace(
                session,
                status=SessionStatus(status),
                payment_status=SessionPaymentStatus(payment_status),
                external_payment_id=external_payment_id or session.external_payment_id,
                updated_at=self._clock.now(),
            )
