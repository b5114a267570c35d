"""Unit tests for BookingOrchestrator over the in-memory adapters."""

import asyncio
import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import TODAY, booking_payload
from hotel_booking.application.dtos.booking_dto import (
    BookingCreated,
    Identity,
    PaymentSetupFailed,
    ValidationFailure,
)
from hotel_booking.domain.entities.booking import BookingStatus
from hotel_booking.domain.entities.payment_session import PaymentSession, SessionStatus
from hotel_booking.domain.errors import (
    BookingMismatchError,
    BookingNotFoundError,
    BookingOwnershipError,
    GatewayRejectedError,
    GatewayUnavailableError,
    IdempotencyConflictError,
    InvalidTransitionError,
    SessionNotFoundError,
    StaleRevisionError,
)

GUEST = Identity(user_id="u-guest", email="a@b.com")


class TestCreate:
    @pytest.mark.asyncio
    async def test_scenario_a_create_then_finalize_paid(self, orchestrator, gateway, store):
        """Paid session confirms the booking with the gateway's payment id."""
        result = await orchestrator.create(booking_payload())
        assert isinstance(result, BookingCreated)
        assert result.redirect_url
        booking = await store.find_by_id(result.booking_id)
        assert booking.status == BookingStatus.PENDING
        assert booking.revision == 0

        gateway.complete_session(result.session_id, payment_intent_id="ext_1")
        outcome = await orchestrator.finalize(result.session_id)

        assert outcome.status == BookingStatus.CONFIRMED
        assert outcome.payment_reference == "ext_1"
        assert outcome.paid
        assert outcome.transitioned

    @pytest.mark.asyncio
    async def test_session_carries_booking_id_and_amount(self, orchestrator, gateway):
        result = await orchestrator.create(booking_payload(total_price="123.45", currency="usd"))
        snapshot = gateway.sessions[result.session_id]
        assert snapshot.booking_id == result.booking_id
        assert gateway.amounts[result.session_id].to_minor_units() == 12345
        assert gateway.amounts[result.session_id].currency_code == "USD"

    @pytest.mark.asyncio
    async def test_scenario_d_validation_never_touches_store(self, orchestrator, store, gateway):
        result = await orchestrator.create(booking_payload(start_date=TODAY.isoformat()))
        assert isinstance(result, ValidationFailure)
        assert "Check-in date must be in the future" in result.messages
        assert store.bookings == {}
        assert gateway.create_calls == 0

    @pytest.mark.asyncio
    async def test_identity_overrides_email(self, orchestrator, store):
        identity = Identity(user_id="u-1", email="guest@example.com")
        result = await orchestrator.create(booking_payload(), identity=identity)
        booking = await store.find_by_id(result.booking_id)
        assert booking.email == "guest@example.com"
        assert booking.user_id == "u-1"

    @pytest.mark.asyncio
    async def test_stored_fields_equal_submitted(self, orchestrator, store):
        result = await orchestrator.create(booking_payload())
        booking = await store.find_by_id(result.booking_id)
        assert booking.hotel_id == "H1"
        assert booking.start_date == TODAY + timedelta(days=1)
        assert booking.end_date == TODAY + timedelta(days=3)
        assert booking.adults == 2
        assert booking.room_types == ["Deluxe King"]
        assert booking.total_price == Decimal("500.00")
        assert booking.currency == "SGD"
        assert booking.first_name == "Ada"
        assert booking.message_to_hotel == "Late arrival"


class TestPaymentSetupFailure:
    @pytest.mark.asyncio
    async def test_scenario_b_gateway_unavailable_keeps_pending(self, orchestrator, gateway, store):
        gateway.fail_next_create(GatewayUnavailableError())
        result = await orchestrator.create(booking_payload())

        assert isinstance(result, PaymentSetupFailed)
        assert result.retryable
        booking = await store.find_by_id(result.booking_id)
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_reference is None
        assert booking.retry_token.error_code == "GATEWAY_UNAVAILABLE"

        retried = await orchestrator.retry_payment(result.booking_id)
        assert isinstance(retried, BookingCreated)
        assert retried.booking_id == result.booking_id
        assert (await store.find_by_id(result.booking_id)).retry_token is None
        assert len(store.bookings) == 1

    @pytest.mark.asyncio
    async def test_rejection_is_not_retryable(self, orchestrator, gateway):
        gateway.fail_next_create(GatewayRejectedError("Invalid currency"))
        result = await orchestrator.create(booking_payload())
        assert isinstance(result, PaymentSetupFailed)
        assert not result.retryable
        assert result.retry_token.reason == "Invalid currency"

    @pytest.mark.asyncio
    async def test_retry_after_outage_reuses_gateway_key(self, orchestrator, gateway, store):
        gateway.fail_next_create(GatewayUnavailableError())
        failed = await orchestrator.create(booking_payload())
        retried = await orchestrator.retry_payment(failed.booking_id)
        session = await store.find_session(retried.session_id)
        assert session.attempt == 1
        key = f"{failed.booking_id}:1"
        assert gateway.idempotency_keys == [key, key]

    @pytest.mark.asyncio
    async def test_retry_after_lost_response_returns_the_opened_session(self, orchestrator, gateway):
        """The timed-out call did open a session; the retry gets that one instead of a second."""
        gateway.fail_next_create(GatewayUnavailableError("Payment gateway timed out"), after_create=True)
        failed = await orchestrator.create(booking_payload())
        assert isinstance(failed, PaymentSetupFailed)
        assert len(gateway.sessions) == 1

        retried = await orchestrator.retry_payment(failed.booking_id)

        assert [retried.session_id] == list(gateway.sessions)

    @pytest.mark.asyncio
    async def test_retry_after_rejection_uses_next_attempt(self, orchestrator, gateway, store):
        gateway.fail_next_create(GatewayRejectedError("Amount too small"))
        failed = await orchestrator.create(booking_payload())
        retried = await orchestrator.retry_payment(failed.booking_id)
        assert (await store.find_session(retried.session_id)).attempt == 2
        assert gateway.idempotency_keys == [f"{failed.booking_id}:1", f"{failed.booking_id}:2"]


class TestRetryPayment:
    @pytest.mark.asyncio
    async def test_live_session_is_returned(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        again = await orchestrator.retry_payment(created.booking_id)
        assert again.session_id == created.session_id
        assert gateway.create_calls == 1

    @pytest.mark.asyncio
    async def test_payment_failed_goes_back_to_pending(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        gateway.expire_session(created.session_id)
        await orchestrator.mark_payment_failed(created.session_id, reason="Checkout session expired")
        assert (await store.find_by_id(created.booking_id)).status == BookingStatus.PAYMENT_FAILED

        retried = await orchestrator.retry_payment(created.booking_id)
        assert isinstance(retried, BookingCreated)
        assert retried.session_id != created.session_id
        booking = await store.find_by_id(created.booking_id)
        assert booking.status == BookingStatus.PENDING
        assert booking.retry_token is None

    @pytest.mark.asyncio
    async def test_terminal_booking_cannot_retry(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        await orchestrator.finalize(created.session_id)
        with pytest.raises(InvalidTransitionError):
            await orchestrator.retry_payment(created.booking_id)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, orchestrator):
        with pytest.raises(BookingNotFoundError):
            await orchestrator.retry_payment("missing")


class TestIdempotentCreate:
    @pytest.mark.asyncio
    async def test_replay_returns_same_booking(self, orchestrator, store, gateway, idempotency_repo):
        first = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        claimed = await idempotency_repo.get("BOOKING_CREATE", "key-1")
        assert claimed.booking_id == first.booking_id
        second = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        assert second.booking_id == first.booking_id
        assert second.session_id == first.session_id
        assert len(store.bookings) == 1
        assert gateway.create_calls == 1

    @pytest.mark.asyncio
    async def test_replay_after_gateway_failure_reuses_booking_id(self, orchestrator, store, gateway):
        gateway.fail_next_create(GatewayUnavailableError())
        first = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        assert isinstance(first, PaymentSetupFailed)
        second = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        assert isinstance(second, BookingCreated)
        assert second.booking_id == first.booking_id
        assert len(store.bookings) == 1

    @pytest.mark.asyncio
    async def test_replay_of_confirmed_booking(self, orchestrator, gateway):
        first = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        gateway.complete_session(first.session_id, "pi_1")
        await orchestrator.finalize(first.session_id)
        again = await orchestrator.create(booking_payload(), idempotency_key="key-1")
        assert again.booking_id == first.booking_id
        assert again.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_key_reuse_with_different_body(self, orchestrator):
        await orchestrator.create(booking_payload(), idempotency_key="key-1")
        with pytest.raises(IdempotencyConflictError):
            await orchestrator.create(booking_payload(total_price="600.00"), idempotency_key="key-1")


class TestFinalize:
    @pytest.mark.asyncio
    async def test_unpaid_session_stays_pending(self, orchestrator):
        created = await orchestrator.create(booking_payload())
        outcome = await orchestrator.finalize(created.session_id)
        assert outcome.status == BookingStatus.PENDING
        assert not outcome.paid
        assert not outcome.transitioned

    @pytest.mark.asyncio
    async def test_repeated_finalize_transitions_once(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        first = await orchestrator.finalize(created.session_id)
        second = await orchestrator.finalize(created.session_id)
        assert first.transitioned
        assert not second.transitioned
        assert second.status == BookingStatus.CONFIRMED
        assert (await store.find_by_id(created.booking_id)).revision == 1

    @pytest.mark.asyncio
    async def test_scenario_c_concurrent_finalize(self, orchestrator, gateway, store):
        """Webhook and client poll racing on one session: a single transition."""
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        gateway.latency = 0

        outcomes = await asyncio.gather(
            orchestrator.finalize(created.session_id),
            orchestrator.finalize(created.session_id, booking_id_hint=created.booking_id),
        )
        # Both calls were in flight at the gateway before either confirmed.
        assert gateway.retrieve_calls == 2
        assert sorted(o.transitioned for o in outcomes) == [False, True]
        assert all(o.status == BookingStatus.CONFIRMED for o in outcomes)
        assert all(o.paid and o.payment_reference == "pi_1" for o in outcomes)
        booking = await store.find_by_id(created.booking_id)
        assert booking.revision == 1
        assert booking.payment_reference == "pi_1"

    @pytest.mark.asyncio
    async def test_stale_revision_on_confirm_is_retried(self, orchestrator, gateway, store, monkeypatch):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        real_cas = store.compare_and_set_status
        seen = []

        async def stale_once(booking_id, expected_revision, *args, **kwargs):
            seen.append(expected_revision)
            if len(seen) == 1:
                raise StaleRevisionError(booking_id, expected_revision, expected_revision + 1)
            return await real_cas(booking_id, expected_revision, *args, **kwargs)

        monkeypatch.setattr(store, "compare_and_set_status", stale_once)
        outcome = await orchestrator.finalize(created.session_id)

        assert seen == [0, 0]
        assert outcome.transitioned
        assert outcome.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_persistent_stale_revision_propagates(self, orchestrator, gateway, store, monkeypatch):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")

        async def always_stale(booking_id, expected_revision, *args, **kwargs):
            raise StaleRevisionError(booking_id, expected_revision, expected_revision + 1)

        monkeypatch.setattr(store, "compare_and_set_status", always_stale)
        with pytest.raises(StaleRevisionError):
            await orchestrator.finalize(created.session_id)

    @pytest.mark.asyncio
    async def test_cancel_racing_confirm_surfaces_payment(self, orchestrator, gateway, store, monkeypatch):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        real_cas = store.compare_and_set_status

        async def cancel_first(booking_id, expected_revision, new_status, **kwargs):
            if new_status == BookingStatus.CONFIRMED:
                await real_cas(booking_id, expected_revision, BookingStatus.CANCELLED)
            return await real_cas(booking_id, expected_revision, new_status, **kwargs)

        monkeypatch.setattr(store, "compare_and_set_status", cancel_first)
        outcome = await orchestrator.finalize(created.session_id)

        assert outcome.status == BookingStatus.CANCELLED
        assert outcome.paid
        assert outcome.payment_reference == "pi_1"
        assert not outcome.transitioned

    @pytest.mark.asyncio
    async def test_reference_falls_back_to_session_id(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id)
        outcome = await orchestrator.finalize(created.session_id)
        assert outcome.payment_reference == created.session_id

    @pytest.mark.asyncio
    async def test_hint_mismatch(self, orchestrator):
        created = await orchestrator.create(booking_payload())
        with pytest.raises(BookingMismatchError):
            await orchestrator.finalize(created.session_id, booking_id_hint="someone-else")

    @pytest.mark.asyncio
    async def test_unknown_session(self, orchestrator):
        with pytest.raises(SessionNotFoundError):
            await orchestrator.finalize("cs_unknown")

    @pytest.mark.asyncio
    async def test_gateway_unavailable_propagates_without_mutation(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        gateway.fail_next_retrieve(GatewayUnavailableError())
        with pytest.raises(GatewayUnavailableError):
            await orchestrator.finalize(created.session_id)
        booking = await store.find_by_id(created.booking_id)
        assert booking.status == BookingStatus.PENDING
        assert booking.revision == 0

    @pytest.mark.asyncio
    async def test_recovers_unrecorded_session(self, orchestrator, gateway, store):
        """Crash between session creation and recording the mapping."""
        created = await orchestrator.create(booking_payload())
        orphan = gateway.add_session(created.booking_id)
        gateway.complete_session(orphan, "pi_9")

        outcome = await orchestrator.finalize(orphan)

        assert outcome.booking_id == created.booking_id
        assert outcome.status == BookingStatus.CONFIRMED
        assert await store.find_booking_id_by_session(orphan) == created.booking_id

    @pytest.mark.asyncio
    async def test_late_payment_after_failure_confirms(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        await orchestrator.mark_payment_failed(created.session_id, reason="expired")
        gateway.complete_session(created.session_id, "pi_late")

        outcome = await orchestrator.finalize(created.session_id)

        assert outcome.status == BookingStatus.CONFIRMED
        assert outcome.payment_reference == "pi_late"
        assert (await store.find_by_id(created.booking_id)).retry_token is None

    @pytest.mark.asyncio
    async def test_payment_for_cancelled_booking_is_surfaced(self, orchestrator, gateway, caplog):
        """A payment that still went through after cancellation is reported, never dropped."""
        created = await orchestrator.create(booking_payload())
        await orchestrator.cancel(created.booking_id, identity=GUEST)
        gateway.complete_session(created.session_id, "pi_after_cancel")

        with caplog.at_level(logging.ERROR, logger="hotel_booking.application.orchestrator"):
            outcome = await orchestrator.finalize(created.session_id)

        assert outcome.status == BookingStatus.CANCELLED
        assert outcome.paid
        assert outcome.payment_reference == "pi_after_cancel"
        assert not outcome.transitioned
        assert any("cannot be confirmed" in record.message for record in caplog.records)

    @pytest.mark.asyncio
    async def test_confirmed_booking_skips_gateway(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        await orchestrator.finalize(created.session_id)
        outcome = await orchestrator.finalize(created.session_id)
        assert outcome.paid
        assert gateway.retrieve_calls == 1


class TestMarkPaymentFailed:
    @pytest.mark.asyncio
    async def test_current_session_fails_booking(self, orchestrator, store):
        created = await orchestrator.create(booking_payload())
        booking = await orchestrator.mark_payment_failed(created.session_id, reason="Payment failed")
        assert booking.status == BookingStatus.PAYMENT_FAILED
        assert booking.retry_token.reason == "Payment failed"
        session = await store.find_session(created.session_id)
        assert session.status == SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_stale_session_is_ignored(self, orchestrator, store, gateway):
        created = await orchestrator.create(booking_payload())
        await store.record_session(
            PaymentSession(session_id="cs_newer", booking_id=created.booking_id, attempt=2)
        )
        booking = await orchestrator.mark_payment_failed(created.session_id, reason="expired")
        assert booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_confirmed_booking_is_untouched(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        await orchestrator.finalize(created.session_id)
        booking = await orchestrator.mark_payment_failed(created.session_id, reason="expired")
        assert booking.status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unknown_session_returns_none(self, orchestrator):
        assert await orchestrator.mark_payment_failed("cs_unknown", reason="expired") is None


class TestCancelAndComplete:
    @pytest.mark.asyncio
    async def test_cancel_pending(self, orchestrator):
        created = await orchestrator.create(booking_payload())
        cancelled = await orchestrator.cancel(created.booking_id, identity=GUEST)
        assert cancelled.status == BookingStatus.CANCELLED
        again = await orchestrator.cancel(created.booking_id, identity=GUEST)
        assert again.revision == cancelled.revision

    @pytest.mark.asyncio
    async def test_cancel_expires_open_session(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        await orchestrator.cancel(created.booking_id, identity=GUEST)
        assert gateway.close_calls == 1
        assert gateway.sessions[created.session_id].status == SessionStatus.EXPIRED
        assert (await store.find_session(created.session_id)).status == SessionStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_cancel_after_payment_confirms_instead(self, orchestrator, gateway, store):
        """Paid on the hosted page but not yet reconciled: the payment wins over the cancel."""
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_paid")

        with pytest.raises(InvalidTransitionError):
            await orchestrator.cancel(created.booking_id, identity=GUEST)

        booking = await store.find_by_id(created.booking_id)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_reference == "pi_paid"

    @pytest.mark.asyncio
    async def test_cancel_refused_while_gateway_unreachable(self, orchestrator, gateway, store):
        created = await orchestrator.create(booking_payload())
        gateway.fail_next_close(GatewayUnavailableError())
        with pytest.raises(GatewayUnavailableError):
            await orchestrator.cancel(created.booking_id, identity=GUEST)
        assert (await store.find_by_id(created.booking_id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancel_confirmed_is_refused(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        await orchestrator.finalize(created.session_id)
        with pytest.raises(InvalidTransitionError):
            await orchestrator.cancel(created.booking_id, identity=GUEST)

    @pytest.mark.asyncio
    async def test_cancel_checks_owner(self, orchestrator, store):
        owner = Identity(user_id="u-1", email="a@b.com")
        created = await orchestrator.create(booking_payload(), identity=owner)
        with pytest.raises(BookingOwnershipError):
            await orchestrator.cancel(created.booking_id, identity=Identity(user_id="u-2", email="a@b.com"))
        assert (await store.find_by_id(created.booking_id)).status == BookingStatus.PENDING
        cancelled = await orchestrator.cancel(created.booking_id, identity=owner)
        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_guest_booking_by_email(self, orchestrator):
        created = await orchestrator.create(booking_payload())
        with pytest.raises(BookingOwnershipError):
            await orchestrator.cancel(created.booking_id, identity=Identity(user_id="u-9", email="x@y.com"))
        cancelled = await orchestrator.cancel(created.booking_id, identity=Identity(user_id="u-9", email="A@B.com"))
        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_complete_confirmed(self, orchestrator, gateway):
        created = await orchestrator.create(booking_payload())
        gateway.complete_session(created.session_id, "pi_1")
        await orchestrator.finalize(created.session_id)
        completed = await orchestrator.complete(created.booking_id)
        assert completed.status == BookingStatus.COMPLETED
        assert completed.payment_reference == "pi_1"

    @pytest.mark.asyncio
    async def test_complete_pending_is_refused(self, orchestrator):
        created = await orchestrator.create(booking_payload())
        with pytest.raises(InvalidTransitionError):
            await orchestrator.complete(created.booking_id)


class TestExpirePending:
    @pytest.mark.asyncio
    async def test_expiry_policy(self, orchestrator, gateway, store, clock):
        paid = await orchestrator.create(booking_payload())
        abandoned = await orchestrator.create(booking_payload())
        gateway.fail_next_create(GatewayUnavailableError())
        never_started = await orchestrator.create(booking_payload())
        gateway.complete_session(paid.session_id, "pi_1")

        clock.advance(minutes=90)
        fresh = await orchestrator.create(booking_payload(start_date=(TODAY + timedelta(days=2)).isoformat()))

        report = await orchestrator.expire_pending()

        assert report.confirmed == [paid.booking_id]
        assert sorted(report.expired) == sorted([abandoned.booking_id, never_started.booking_id])
        assert (await store.find_by_id(abandoned.booking_id)).status == BookingStatus.PAYMENT_FAILED
        assert (await store.find_by_id(never_started.booking_id)).status == BookingStatus.PAYMENT_FAILED
        assert (await store.find_by_id(fresh.booking_id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_gateway_outage_skips(self, orchestrator, gateway, store, clock):
        created = await orchestrator.create(booking_payload())
        clock.advance(hours=2)
        gateway.fail_next_retrieve(GatewayUnavailableError())
        report = await orchestrator.expire_pending(timedelta(minutes=30))
        assert report.skipped == [created.booking_id]
        assert (await store.find_by_id(created.booking_id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_expired_booking_can_be_retried(self, orchestrator, store, clock):
        created = await orchestrator.create(booking_payload())
        clock.advance(hours=2)
        await orchestrator.expire_pending()
        retried = await orchestrator.retry_payment(created.booking_id)
        assert retried.booking_id == created.booking_id
        assert (await store.find_by_id(created.booking_id)).status == BookingStatus.PENDING
