import logging
from dataclasses import dataclass

from hotel_booking.application.interfaces.payment_gateway import PaymentGateway
from hotel_booking.application.orchestrator import BookingOrchestrator
from hotel_booking.domain.entities.booking import BookingStatus
from hotel_booking.domain.entities.payment_session import SessionStatus
from hotel_booking.domain.errors import SessionNotFoundError, SignatureInvalidError

PAID_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)
FAILED_EVENTS = {
    "checkout.session.expired": ("Checkout session expired", "SESSION_EXPIRED", SessionStatus.EXPIRED),
    "checkout.session.async_payment_failed": ("Payment failed", "PAYMENT_FAILED", SessionStatus.COMPLETE),
}


@dataclass
class NotificationHandled:
    event_type: str
    action: str  # finalized | failed | ignored
    booking_id: str | None = None
    status: str | None = None


class HandlePaymentNotificationUseCase:
    """
    Push path of the confirmation listener.

    The notification body is only trusted for routing: the booking outcome is
    always taken from `finalize`, which asks the gateway directly.
    """

    def __init__(
        self,
        orchestrator: BookingOrchestrator,
        gateway: PaymentGateway,
        webhook_secret: str | None,
    ) -> None:
        self._orchestrator = orchestrator
        self._gateway = gateway
        self._webhook_secret = webhook_secret
        self._logger = logging.getLogger(__name__)

    async def execute(self, raw_body: bytes, signature: str | None) -> NotificationHandled:
        if not raw_body:
            raise SignatureInvalidError("Empty webhook body")
        try:
            event = await self._gateway.verify_notification(
                raw_payload=raw_body,
                signature_header=signature,
                shared_secret=self._webhook_secret,
            )
        except SignatureInvalidError as exc:
            self._logger.warning("Webhook signature rejected", extra={"reason": exc.message})
            raise

        log_extra = {"event_id": event.event_id, "event_type": event.event_type, "session_id": event.session_id}
        if event.event_type not in PAID_EVENTS and event.event_type not in FAILED_EVENTS:
            self._logger.info("Webhook event ignored", extra=log_extra)
            return NotificationHandled(event_type=event.event_type, action="ignored")
        if not event.session_id:
            self._logger.warning("Webhook event without session id", extra=log_extra)
            return NotificationHandled(event_type=event.event_type, action="ignored")

        try:
            if event.event_type in PAID_EVENTS:
                outcome = await self._orchestrator.finalize(event.session_id, event.booking_id)
                self._logger.info(
                    "Webhook processed: session finalized",
                    extra={**log_extra, "booking_id": outcome.booking_id, "status": outcome.status.value},
                )
                return NotificationHandled(
                    event_type=event.event_type,
                    action="finalized",
                    booking_id=outcome.booking_id,
                    status=outcome.status.value,
                )

            reason, error_code, session_status = FAILED_EVENTS[event.event_type]
            booking = await self._orchestrator.mark_payment_failed(
                event.session_id,
                reason=reason,
                error_code=error_code,
                session_status=session_status,
            )
        except SessionNotFoundError:
            # Sessions created outside this service share the gateway account.
            self._logger.warning("Webhook for unknown session ignored", extra=log_extra)
            return NotificationHandled(event_type=event.event_type, action="ignored")

        if booking is None or booking.status != BookingStatus.PAYMENT_FAILED:
            return NotificationHandled(event_type=event.event_type, action="ignored")
        self._logger.info(
            "Webhook processed: payment failure",
            extra={**log_extra, "booking_id": booking.id, "status": booking.status.value},
        )
        return NotificationHandled(
            event_type=event.event_type,
            action="failed",
            booking_id=booking.id,
            status=booking.status.value,
        )
