from dataclasses import dataclass, field
from typing import Any

from hotel_booking.domain.entities.payment_session import SessionPaymentStatus, SessionStatus
from hotel_booking.domain.value_objects.money import Money


@dataclass
class SessionHandle:
    session_id: str
    redirect_url: str


@dataclass
class SessionSnapshot:
    session_id: str
    status: SessionStatus
    payment_status: SessionPaymentStatus
    external_payment_id: str | None = None
    booking_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in (
            SessionPaymentStatus.PAID,
            SessionPaymentStatus.NO_PAYMENT_REQUIRED,
        )


@dataclass
class GatewayEvent:
    event_id: str | None
    event_type: str
    session_id: str | None = None
    booking_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    """
    Port for the external payment provider.

    Every call may raise GatewayUnavailableError (retryable) or
    GatewayRejectedError (not retryable).
    """

    async def create_session(
        self,
        booking_id: str,
        amount: Money,
        metadata: dict[str, str],
        description: str,
        idempotency_key: str | None = None,
    ) -> SessionHandle:
        raise NotImplementedError

    async def retrieve_session(self, session_id: str) -> SessionSnapshot:
        raise NotImplementedError

    async def close_session(self, session_id: str) -> None:
        """Expire an open session so it can no longer be paid."""
        raise NotImplementedError

    async def verify_notification(
        self,
        raw_payload: bytes,
        signature_header: str | None,
        shared_secret: str | None,
    ) -> GatewayEvent:
        raise NotImplementedError
