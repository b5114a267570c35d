"""
Booking / payment orchestration.

Drives a booking from a validated request to a terminal state while the
payment gateway works asynchronously. The booking is always persisted as
`pending` before any payment session exists, and both confirmation channels
(gateway push and client poll) converge on `finalize`.
"""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Mapping

from hotel_booking.application.dtos.booking_dto import (
    BookingCreated,
    ExpiryReport,
    FinalizeOutcome,
    Identity,
    PaymentSetupFailed,
    ValidationFailure,
)
from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock
from hotel_booking.application.interfaces.idempotency_repo import IdempotencyRecord, IdempotencyRepo
from hotel_booking.application.interfaces.payment_gateway import PaymentGateway
from hotel_booking.application.interfaces.uuid_generator import UUIDGenerator
from hotel_booking.application.validation import parse_request, validate
from hotel_booking.domain.entities.booking import Booking, BookingStatus, RetryToken
from hotel_booking.domain.entities.payment_session import (
    PaymentSession,
    SessionPaymentStatus,
    SessionStatus,
)
from hotel_booking.domain.errors import (
    BookingMismatchError,
    BookingNotFoundError,
    BookingOwnershipError,
    DuplicateIdError,
    GatewayError,
    GatewayRejectedError,
    GatewayUnavailableError,
    IdempotencyConflictError,
    InvalidTransitionError,
    SessionNotFoundError,
    StaleRevisionError,
)

CREATE_SCOPE = "BOOKING_CREATE"


def _hash_request(payload: Mapping[str, Any], identity: Identity | None) -> str:
    normalized = json.dumps(
        {"payload": payload, "user": identity.email if identity else None},
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )
    return hashlib.sha256(normalized.encode()).hexdigest()


class BookingOrchestrator:
    def __init__(
        self,
        store: BookingStore,
        gateway: PaymentGateway,
        idempotency_repo: IdempotencyRepo,
        clock: Clock,
        uuid_generator: UUIDGenerator,
        default_currency: str = "SGD",
        pending_expiry: timedelta = timedelta(minutes=60),
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._idempotency_repo = idempotency_repo
        self._clock = clock
        self._uuid_generator = uuid_generator
        self._default_currency = default_currency
        self._pending_expiry = pending_expiry
        self._logger = logging.getLogger(__name__)

    # === Creation ===

    async def create(
        self,
        payload: Any,
        identity: Identity | None = None,
        idempotency_key: str | None = None,
    ) -> BookingCreated | ValidationFailure | PaymentSetupFailed:
        issues = validate(payload, today=self._clock.today())
        if issues:
            self._logger.info(
                "Booking request rejected",
                extra={"issues": [f"{issue.field}:{issue.code}" for issue in issues]},
            )
            return ValidationFailure(issues=issues)

        request = parse_request(payload, default_currency=self._default_currency)
        if identity is not None:
            request.email = identity.email

        booking_id = self._uuid_generator.generate_uuid()
        replayed = False
        if idempotency_key:
            request_hash = _hash_request(payload, identity)
            record = await self._idempotency_repo.claim(
                IdempotencyRecord(
                    scope=CREATE_SCOPE,
                    idem_key=idempotency_key,
                    request_hash=request_hash,
                    booking_id=booking_id,
                )
            )
            if record.request_hash != request_hash:
                raise IdempotencyConflictError(idem_key=idempotency_key, scope=CREATE_SCOPE)
            replayed = record.booking_id != booking_id
            booking_id = record.booking_id
            if replayed:
                existing = await self._store.find_by_id(booking_id)
                if existing is not None:
                    self._logger.info(
                        "Replaying booking creation",
                        extra={"booking_id": booking_id, "idem_key": idempotency_key},
                    )
                    return await self._resume(existing, replay=True)

        now = self._clock.now()
        booking = Booking(
            id=booking_id,
            hotel_id=request.hotel_id,
            hotel_name=request.hotel_name,
            destination_id=request.destination_id,
            start_date=request.start_date,
            end_date=request.end_date,
            adults=request.adults,
            children=request.children,
            room_types=list(request.room_types),
            total_price=request.total_price,
            currency=request.currency,
            salutation=request.salutation,
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            phone=request.phone,
            message_to_hotel=request.message_to_hotel,
            user_id=identity.user_id if identity else None,
            status=BookingStatus.PENDING,
            revision=0,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._store.insert(booking)
        except DuplicateIdError:
            if not replayed:
                self._logger.error("Generated booking id collided", extra={"booking_id": booking_id})
                raise
            # A concurrent request holding the same idempotency key inserted it first.
            existing = await self._store.find_by_id(booking_id)
            if existing is None:
                raise
            return await self._resume(existing, replay=True)

        self._logger.info(
            "Booking created",
            extra={"booking_id": booking_id, "hotel_id": booking.hotel_id, "amount": str(booking.price)},
        )
        return await self._open_session(booking, attempt=1)

    async def retry_payment(self, booking_id: str) -> BookingCreated | PaymentSetupFailed:
        """Re-initiate payment for an existing booking, keeping its id."""
        booking = await self._get_booking(booking_id)
        return await self._resume(booking, replay=False)

    async def _resume(
        self, booking: Booking, replay: bool, stale_retry: bool = True
    ) -> BookingCreated | PaymentSetupFailed:
        if booking.status == BookingStatus.PAYMENT_FAILED:
            try:
                booking = await self._store.compare_and_set_status(
                    booking.id,
                    booking.revision,
                    BookingStatus.PENDING,
                    clear_retry_token=True,
                )
            except StaleRevisionError:
                if not stale_retry:
                    raise
                current = await self._get_booking(booking.id)
                return await self._resume(current, replay=replay, stale_retry=False)
            self._logger.info(
                "Payment retry re-entered pending",
                extra={"booking_id": booking.id, "revision": booking.revision},
            )

        latest = await self._store.latest_session(booking.id)
        if booking.status == BookingStatus.PENDING:
            if latest is not None and latest.is_live and latest.redirect_url and booking.retry_token is None:
                return BookingCreated(
                    booking_id=booking.id,
                    session_id=latest.session_id,
                    redirect_url=latest.redirect_url,
                )
            return await self._open_session(booking, attempt=self._next_attempt(booking, latest))

        if replay and latest is not None and latest.redirect_url:
            return BookingCreated(
                booking_id=booking.id,
                session_id=latest.session_id,
                redirect_url=latest.redirect_url,
                status=booking.status,
            )
        raise InvalidTransitionError(booking.id, booking.status.value, BookingStatus.PENDING.value)

    @staticmethod
    def _next_attempt(booking: Booking, latest: PaymentSession | None) -> int:
        last = latest.attempt if latest else 0
        token = booking.retry_token
        if token is not None and token.attempt > last:
            if token.retryable:
                # The failed call may still have opened a session; the same key returns it.
                return token.attempt
            last = token.attempt
        return last + 1

    async def _open_session(self, booking: Booking, attempt: int) -> BookingCreated | PaymentSetupFailed:
        metadata = {"booking_id": booking.id, "attempt": str(attempt)}
        description = (
            f"{booking.nights} night(s) from {booking.start_date.isoformat()} "
            f"to {booking.end_date.isoformat()}"
        )
        try:
            handle = await self._gateway.create_session(
                booking_id=booking.id,
                amount=booking.price,
                metadata=metadata,
                description=description,
                idempotency_key=f"{booking.id}:{attempt}",
            )
        except GatewayError as exc:
            token = RetryToken(
                reason=exc.message,
                error_code=exc.code,
                failed_at=self._clock.now(),
                attempt=attempt,
                retryable=exc.retryable,
            )
            await self._store.record_retry_token(booking.id, token)
            self._logger.warning(
                "Payment session setup failed, booking kept pending",
                extra={"booking_id": booking.id, "attempt": attempt, "error_code": exc.code},
            )
            return PaymentSetupFailed(booking_id=booking.id, retry_token=token, error=exc)

        now = self._clock.now()
        await self._store.record_session(
            PaymentSession(
                session_id=handle.session_id,
                booking_id=booking.id,
                attempt=attempt,
                redirect_url=handle.redirect_url,
                created_at=now,
                updated_at=now,
            )
        )
        if booking.retry_token is not None:
            await self._store.record_retry_token(booking.id, None)
        self._logger.info(
            "Payment session opened",
            extra={"booking_id": booking.id, "session_id": handle.session_id, "attempt": attempt},
        )
        return BookingCreated(
            booking_id=booking.id,
            session_id=handle.session_id,
            redirect_url=handle.redirect_url,
        )

    # === Confirmation ===

    async def finalize(self, session_id: str, booking_id_hint: str | None = None) -> FinalizeOutcome:
        """
        Reconcile a booking with the gateway's view of one payment session.

        Idempotent and safe under concurrent calls for the same session: the
        first caller to win the compare-and-set confirms the booking, every
        other caller observes the terminal state unchanged.
        """
        booking_id = await self._resolve_booking_id(session_id, booking_id_hint)
        booking = await self._get_booking(booking_id)
        if booking.is_paid:
            return FinalizeOutcome.from_booking(booking, session_id, paid=True, transitioned=False)

        snapshot = await self._gateway.retrieve_session(session_id)
        if snapshot.booking_id and snapshot.booking_id != booking_id:
            raise BookingMismatchError(session_id, snapshot.booking_id, booking_id)
        await self._store.update_session_snapshot(
            session_id,
            status=snapshot.status,
            payment_status=snapshot.payment_status,
            external_payment_id=snapshot.external_payment_id,
        )

        if not snapshot.is_paid:
            self._logger.info(
                "Payment not completed yet",
                extra={"booking_id": booking_id, "session_id": session_id, "session_status": snapshot.status.value},
            )
            return FinalizeOutcome.from_booking(booking, session_id, paid=False, transitioned=False)

        payment_reference = snapshot.external_payment_id or session_id
        if booking.is_terminal:
            return self._unapplied_payment(booking, session_id, payment_reference)
        return await self._confirm(booking, session_id, payment_reference)

    def _unapplied_payment(self, booking: Booking, session_id: str, payment_reference: str) -> FinalizeOutcome:
        """A captured payment for a booking that can no longer be confirmed; needs a refund."""
        self._logger.error(
            "Payment captured for a booking that cannot be confirmed",
            extra={
                "booking_id": booking.id,
                "session_id": session_id,
                "payment_reference": payment_reference,
                "status": booking.status.value,
            },
        )
        return FinalizeOutcome(
            booking_id=booking.id,
            session_id=session_id,
            status=booking.status,
            payment_reference=payment_reference,
            paid=True,
            transitioned=False,
        )

    async def _confirm(self, booking: Booking, session_id: str, payment_reference: str) -> FinalizeOutcome:
        stale: StaleRevisionError | None = None
        for _ in range(2):
            try:
                if booking.status == BookingStatus.PAYMENT_FAILED:
                    # A session paid after the booking was given up on still wins.
                    booking = await self._store.compare_and_set_status(
                        booking.id, booking.revision, BookingStatus.PENDING, clear_retry_token=True
                    )
                confirmed = await self._store.compare_and_set_status(
                    booking.id,
                    booking.revision,
                    BookingStatus.CONFIRMED,
                    payment_reference=payment_reference,
                    clear_retry_token=True,
                )
            except StaleRevisionError as exc:
                current = await self._get_booking(booking.id)
                if current.is_paid:
                    return FinalizeOutcome.from_booking(current, session_id, paid=True, transitioned=False)
                if current.is_terminal:
                    return self._unapplied_payment(current, session_id, payment_reference)
                self._logger.info(
                    "Stale revision while confirming",
                    extra={"booking_id": booking.id, "revision": current.revision},
                )
                booking = current
                stale = exc
                continue

            self._logger.info(
                "Booking confirmed",
                extra={
                    "booking_id": confirmed.id,
                    "session_id": session_id,
                    "payment_reference": payment_reference,
                    "revision": confirmed.revision,
                },
            )
            return FinalizeOutcome.from_booking(confirmed, session_id, paid=True, transitioned=True)
        raise stale

    async def _resolve_booking_id(self, session_id: str, booking_id_hint: str | None) -> str:
        booking_id = await self._store.find_booking_id_by_session(session_id)
        if booking_id is None:
            booking_id = await self._recover_session_mapping(session_id)
        if booking_id_hint and booking_id_hint != booking_id:
            raise BookingMismatchError(session_id, booking_id_hint, booking_id)
        return booking_id

    async def _recover_session_mapping(self, session_id: str) -> str:
        """
        Rebuild the index entry for a session the store never recorded.

        Happens when the process died between the gateway creating the session
        and the mapping being written. Only the gateway's own metadata is
        trusted to name the booking.
        """
        try:
            snapshot = await self._gateway.retrieve_session(session_id)
        except GatewayRejectedError as exc:
            raise SessionNotFoundError(session_id) from exc
        if not snapshot.booking_id:
            raise SessionNotFoundError(session_id)
        booking = await self._store.find_by_id(snapshot.booking_id)
        if booking is None:
            raise SessionNotFoundError(session_id)

        latest = await self._store.latest_session(booking.id)
        now = self._clock.now()
        await self._store.record_session(
            PaymentSession(
                session_id=session_id,
                booking_id=booking.id,
                attempt=self._next_attempt(booking, latest),
                status=snapshot.status,
                payment_status=snapshot.payment_status,
                external_payment_id=snapshot.external_payment_id,
                created_at=now,
                updated_at=now,
            )
        )
        self._logger.warning(
            "Recovered unrecorded payment session",
            extra={"booking_id": booking.id, "session_id": session_id},
        )
        return booking.id

    async def mark_payment_failed(
        self,
        session_id: str,
        reason: str,
        error_code: str = "PAYMENT_FAILED",
        session_status: SessionStatus = SessionStatus.EXPIRED,
    ) -> Booking | None:
        """
        Apply an explicit failure (gateway event or expiry policy) to a booking.

        Only a pending booking whose latest session is `session_id` moves to
        payment_failed; anything else is left as is.
        """
        booking_id = await self._store.find_booking_id_by_session(session_id)
        if booking_id is None:
            self._logger.warning("Failure event for unknown session ignored", extra={"session_id": session_id})
            return None
        session = await self._store.find_session(session_id)
        if session is not None and not session.is_paid:
            await self._store.update_session_snapshot(
                session_id, status=session_status, payment_status=SessionPaymentStatus.UNPAID
            )

        stale: StaleRevisionError | None = None
        for _ in range(2):
            booking = await self._get_booking(booking_id)
            latest = await self._store.latest_session(booking_id)
            if booking.status != BookingStatus.PENDING or (
                latest is not None and latest.session_id != session_id
            ):
                self._logger.info(
                    "Payment failure not applied",
                    extra={"booking_id": booking_id, "session_id": session_id, "status": booking.status.value},
                )
                return booking
            token = RetryToken(
                reason=reason,
                error_code=error_code,
                failed_at=self._clock.now(),
                attempt=session.attempt if session else 1,
                retryable=True,
            )
            try:
                failed = await self._store.compare_and_set_status(
                    booking_id, booking.revision, BookingStatus.PAYMENT_FAILED, retry_token=token
                )
            except StaleRevisionError as exc:
                stale = exc
                continue
            self._logger.info(
                "Booking payment failed",
                extra={"booking_id": booking_id, "session_id": session_id, "error_code": error_code},
            )
            return failed
        raise stale

    # === Other lifecycle operations ===

    async def cancel(self, booking_id: str, identity: Identity) -> Booking:
        """
        Cancel a booking on behalf of its owner.

        A pending booking's open payment session is expired at the gateway and
        reconciled first. If the guest already paid, the booking is confirmed
        instead and the cancellation fails with InvalidTransitionError. When the
        gateway cannot be reached the booking is left untouched.
        """
        booking = await self._get_booking(booking_id)
        if not booking.is_owned_by(identity.user_id, identity.email):
            raise BookingOwnershipError(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking
        if booking.status == BookingStatus.PENDING:
            await self._close_payment(booking)

        stale: StaleRevisionError | None = None
        for _ in range(2):
            booking = await self._get_booking(booking_id)
            if booking.status == BookingStatus.CANCELLED:
                return booking
            try:
                cancelled = await self._store.compare_and_set_status(
                    booking_id, booking.revision, BookingStatus.CANCELLED
                )
            except StaleRevisionError as exc:
                stale = exc
                continue
            self._logger.info("Booking cancelled", extra={"booking_id": booking_id})
            return cancelled
        raise stale

    async def _close_payment(self, booking: Booking) -> None:
        latest = await self._store.latest_session(booking.id)
        if latest is None:
            return
        if latest.is_live:
            try:
                await self._gateway.close_session(latest.session_id)
            except GatewayRejectedError as exc:
                self._logger.info(
                    "Payment session already closed at the gateway",
                    extra={"booking_id": booking.id, "session_id": latest.session_id, "reason": exc.message},
                )
        await self.finalize(latest.session_id)

    async def complete(self, booking_id: str) -> Booking:
        """Mark a confirmed stay as completed (guest checked out)."""
        booking = await self._get_booking(booking_id)
        if booking.status == BookingStatus.COMPLETED:
            return booking
        completed = await self._store.compare_and_set_status(
            booking_id, booking.revision, BookingStatus.COMPLETED
        )
        self._logger.info("Booking completed", extra={"booking_id": booking_id})
        return completed

    async def expire_pending(self, older_than: timedelta | None = None) -> ExpiryReport:
        """
        Expiry policy for bookings stuck in pending.

        Each candidate is reconciled with the gateway first, so a payment that
        completed without any notification still confirms the booking.
        """
        cutoff = self._clock.now() - (older_than or self._pending_expiry)
        report = ExpiryReport()
        for booking in await self._store.find_pending_created_before(cutoff):
            latest = await self._store.latest_session(booking.id)
            try:
                if latest is None:
                    token = RetryToken(
                        reason="Payment was never started",
                        error_code="SESSION_EXPIRED",
                        failed_at=self._clock.now(),
                        attempt=booking.retry_token.attempt if booking.retry_token else 1,
                    )
                    await self._store.compare_and_set_status(
                        booking.id, booking.revision, BookingStatus.PAYMENT_FAILED, retry_token=token
                    )
                    report.expired.append(booking.id)
                    continue

                outcome = await self.finalize(latest.session_id)
                if outcome.paid:
                    report.confirmed.append(booking.id)
                    continue
                failed = await self.mark_payment_failed(
                    latest.session_id,
                    reason="Payment session expired",
                    error_code="SESSION_EXPIRED",
                )
                if failed is not None and failed.status == BookingStatus.PAYMENT_FAILED:
                    report.expired.append(booking.id)
                else:
                    report.skipped.append(booking.id)
            except (GatewayUnavailableError, StaleRevisionError, InvalidTransitionError) as exc:
                self._logger.warning(
                    "Expiry skipped booking",
                    extra={"booking_id": booking.id, "error": str(exc)},
                )
                report.skipped.append(booking.id)
        self._logger.info(
            "Pending bookings expiry run",
            extra={"expired": len(report.expired), "confirmed": len(report.confirmed), "skipped": len(report.skipped)},
        )
        return report

    # === Helpers ===

    async def _get_booking(self, booking_id: str) -> Booking:
        booking = await self._store.find_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

