from typing import Sequence

from hotel_booking.application.dtos.booking_dto import Identity
from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.domain.entities.booking import Booking
from hotel_booking.domain.errors import BookingNotFoundError, BookingOwnershipError


class GetBookingUseCase:
    def __init__(self, store: BookingStore) -> None:
        self._store = store

    async def execute(self, booking_id: str, identity: Identity) -> Booking:
        booking = await self._store.find_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if not booking.is_owned_by(identity.user_id, identity.email):
            raise BookingOwnershipError(booking_id)
        return booking


class ListBookingsUseCase:
    """Bookings of the authenticated guest, newest first."""

    def __init__(self, store: BookingStore) -> None:
        self._store = store

    async def execute(self, identity: Identity) -> Sequence[Booking]:
        return await self._store.find_by_email(identity.email)
