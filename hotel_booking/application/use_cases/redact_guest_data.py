import logging

from hotel_booking.application.dtos.booking_dto import Identity
from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock


class RedactGuestDataUseCase:
    """
    Remove the personal data of a guest from every booking they made.

    Bookings themselves are kept (ids, dates, amounts, status) so payments
    stay traceable.
    """

    def __init__(self, store: BookingStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def execute(self, identity: Identity) -> int:
        redacted = await self._store.redact_guest_data(identity.email, self._clock.now())
        self._logger.info(
            "Guest data redacted",
            extra={"user_id": identity.user_id, "bookings": redacted},
        )
        return redacted
