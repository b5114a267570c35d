from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock
from hotel_booking.domain.entities.booking import REDACTED, Booking, BookingStatus, RetryToken
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
from hotel_booking.infrastructure.db.engine import session_scope
from hotel_booking.infrastructure.db.retry import with_deadlock_retry
from hotel_booking.infrastructure.db.tables import bookings, payment_sessions
from hotel_booking.infrastructure.services.clock_impl import ClockImpl


def _to_db(value: datetime | None) -> datetime | None:
    """DATETIME columns hold naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _row_to_booking(row: Mapping[str, Any]) -> Booking:
    return Booking(
        id=row["id"],
        hotel_id=row["hotel_id"],
        hotel_name=row["hotel_name"],
        destination_id=row["destination_id"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        adults=row["adults"],
        children=row["children"],
        room_types=list(row["room_types"] or []),
        total_price=Decimal(str(row["total_price"])),
        currency=row["currency"],
        salutation=row["salutation"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        phone=row["phone"],
        message_to_hotel=row["message_to_hotel"],
        user_id=row["user_id"],
        status=BookingStatus(row["status"]),
        payment_reference=row["payment_reference"],
        retry_token=RetryToken.from_dict(row["retry_token"]),
        revision=row["revision"],
        created_at=_from_db(row["created_at"]),
        updated_at=_from_db(row["updated_at"]),
        redacted_at=_from_db(row["redacted_at"]),
    )


def _row_to_session(row: Mapping[str, Any]) -> PaymentSession:
    return PaymentSession(
        session_id=row["session_id"],
        booking_id=row["booking_id"],
        attempt=row["attempt"],
        redirect_url=row["redirect_url"],
        status=SessionStatus(row["status"]),
        payment_status=SessionPaymentStatus(row["payment_status"]),
        external_payment_id=row["external_payment_id"],
        created_at=_from_db(row["created_at"]),
        updated_at=_from_db(row["updated_at"]),
    )


class BookingStoreSQL(BookingStore):
    """
    BookingStore on SQLAlchemy Core.

    Each call runs in its own transaction. Status changes are conditional
    UPDATEs on (id, revision), so two writers racing on the same revision
    cannot both succeed.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock: Clock | None = None) -> None:
        self._session_maker = session_maker
        self._clock = clock or ClockImpl()

    async def _fetch_booking(self, session: AsyncSession, booking_id: str) -> Booking | None:
        stmt = select(bookings).where(bookings.c.id == booking_id).limit(1)
        result = await session.execute(stmt)
        row = result.mappings().first()
        return _row_to_booking(row) if row else None

    @with_deadlock_retry()
    async def insert(self, booking: Booking) -> None:
        now = _to_db(booking.created_at or self._clock.now())
        stmt = insert(bookings).values(
            id=booking.id,
            hotel_id=booking.hotel_id,
            hotel_name=booking.hotel_name,
            destination_id=booking.destination_id,
            start_date=booking.start_date,
            end_date=booking.end_date,
            nights=booking.nights,
            adults=booking.adults,
            children=booking.children,
            room_types=list(booking.room_types),
            total_price=booking.total_price,
            currency=booking.currency,
            salutation=booking.salutation,
            first_name=booking.first_name,
            last_name=booking.last_name,
            email=booking.email,
            phone=booking.phone,
            message_to_hotel=booking.message_to_hotel,
            user_id=booking.user_id,
            status=BookingStatus(booking.status).value,
            payment_reference=booking.payment_reference,
            retry_token=booking.retry_token.to_dict() if booking.retry_token else None,
            revision=booking.revision,
            created_at=now,
            updated_at=_to_db(booking.updated_at) or now,
        )
        try:
            async with session_scope(self._session_maker) as session:
                await session.execute(stmt)
        except IntegrityError as exc:
            raise DuplicateIdError(booking.id) from exc

    @with_deadlock_retry()
    async def compare_and_set_status(
        self,
        booking_id: str,
        expected_revision: int,
        new_status: BookingStatus,
        payment_reference: str | None = None,
        retry_token: RetryToken | None = None,
        clear_retry_token: bool = False,
    ) -> Booking:
        async with session_scope(self._session_maker) as session:
            current = await self._fetch_booking(session, booking_id)
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
            stmt = (
                update(bookings)
                .where(
                    bookings.c.id == booking_id,
                    bookings.c.revision == expected_revision,
                )
                .values(
                    status=updated.status.value,
                    payment_reference=updated.payment_reference,
                    retry_token=updated.retry_token.to_dict() if updated.retry_token else None,
                    revision=updated.revision,
                    updated_at=_to_db(updated.updated_at),
                )
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                latest = await self._fetch_booking(session, booking_id)
                actual = latest.revision if latest else expected_revision
                raise StaleRevisionError(booking_id, expected_revision, actual)
            return updated

    @with_deadlock_retry()
    async def record_retry_token(self, booking_id: str, retry_token: RetryToken | None) -> None:
        stmt = (
            update(bookings)
            .where(bookings.c.id == booking_id)
            .values(
                retry_token=retry_token.to_dict() if retry_token else None,
                updated_at=_to_db(self._clock.now()),
            )
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise BookingNotFoundError(booking_id)

    async def find_by_id(self, booking_id: str) -> Booking | None:
        async with session_scope(self._session_maker) as session:
            return await self._fetch_booking(session, booking_id)

    async def find_by_email(self, email: str) -> Sequence[Booking]:
        stmt = (
            select(bookings)
            .where(func.lower(bookings.c.email) == email.strip().lower())
            .order_by(bookings.c.created_at.desc())
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            return [_row_to_booking(row) for row in result.mappings().all()]

    async def find_pending_created_before(self, cutoff: datetime) -> Sequence[Booking]:
        stmt = (
            select(bookings)
            .where(
                bookings.c.status == BookingStatus.PENDING.value,
                bookings.c.created_at < _to_db(cutoff),
            )
            .order_by(bookings.c.created_at)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            return [_row_to_booking(row) for row in result.mappings().all()]

    @with_deadlock_retry()
    async def redact_guest_data(self, email: str, redacted_at: datetime) -> int:
        stmt = (
            update(bookings)
            .where(func.lower(bookings.c.email) == email.strip().lower())
            .values(
                first_name=REDACTED,
                last_name=REDACTED,
                email=REDACTED,
                salutation=None,
                phone=None,
                message_to_hotel=None,
                redacted_at=_to_db(redacted_at),
                updated_at=_to_db(redacted_at),
            )
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            return result.rowcount

    # === Idempotency index ===

    @with_deadlock_retry()
    async def record_session(self, session: PaymentSession) -> None:
        now = _to_db(session.created_at or self._clock.now())
        stmt = insert(payment_sessions).values(
            session_id=session.session_id,
            booking_id=session.booking_id,
            attempt=session.attempt,
            redirect_url=session.redirect_url,
            status=SessionStatus(session.status).value,
            payment_status=SessionPaymentStatus(session.payment_status).value,
            external_payment_id=session.external_payment_id,
            created_at=now,
            updated_at=_to_db(session.updated_at) or now,
        )
        try:
            async with session_scope(self._session_maker) as db:
                if await self._fetch_booking(db, session.booking_id) is None:
                    raise BookingNotFoundError(session.booking_id)
                await db.execute(stmt)
        except IntegrityError:
            existing = await self.find_session(session.session_id)
            if existing is None:
                raise
            if existing.booking_id != session.booking_id:
                raise DuplicateSessionError(session.session_id, session.booking_id, existing.booking_id)

    async def find_booking_id_by_session(self, session_id: str) -> str | None:
        stmt = select(payment_sessions.c.booking_id).where(payment_sessions.c.session_id == session_id)
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_session(self, session_id: str) -> PaymentSession | None:
        stmt = select(payment_sessions).where(payment_sessions.c.session_id == session_id).limit(1)
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
            return _row_to_session(row) if row else None

    async def latest_session(self, booking_id: str) -> PaymentSession | None:
        stmt = (
            select(payment_sessions)
            .where(payment_sessions.c.booking_id == booking_id)
            .order_by(payment_sessions.c.attempt.desc(), payment_sessions.c.created_at.desc())
            .limit(1)
        )
        async with session_scope(self._session_maker) as session:
            result = await session.execute(stmt)
            row = result.mappings().first()
            return _row_to_session(row) if row else None

    @with_deadlock_retry()
    async def update_session_snapshot(
        self,
        session_id: str,
        status: SessionStatus,
        payment_status: SessionPaymentStatus,
        external_payment_id: str | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "status": SessionStatus(status).value,
            "payment_status": SessionPaymentStatus(payment_status).value,
            "updated_at": _to_db(self._clock.now()),
        }
        if external_payment_id:
            values["external_payment_id"] = external_payment_id
        stmt = update(payment_sessions).where(payment_sessions.c.session_id == session_id).values(**values)
        async with session_scope(self._session_maker) as session:
            await session.execute(stmt)
