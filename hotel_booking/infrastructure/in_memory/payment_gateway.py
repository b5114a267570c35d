"""Scriptable stand-in for the payment gateway, used in tests and local runs."""

import asyncio
import hashlib
import hmac
import json
import time
from dataclasses import replace
from uuid import uuid4

from hotel_booking.application.interfaces.payment_gateway import (
    GatewayEvent,
    PaymentGateway,
    SessionHandle,
    SessionSnapshot,
)
from hotel_booking.domain.entities.payment_session import SessionPaymentStatus, SessionStatus
from hotel_booking.domain.errors import (
    GatewayError,
    GatewayRejectedError,
    SignatureInvalidError,
)
from hotel_booking.domain.value_objects.money import Money
from hotel_booking.infrastructure.gateways.stripe_events import to_gateway_event


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a `t=...,v1=...` signature header the way the gateway signs notifications."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


class FakePaymentGateway(PaymentGateway):
    def __init__(self, client_url: str = "http://localhost:5173") -> None:
        self._client_url = client_url.rstrip("/")
        self.sessions: dict[str, SessionSnapshot] = {}
        self.amounts: dict[str, Money] = {}
        self._by_idempotency_key: dict[str, SessionHandle] = {}
        self._create_failures: list[tuple[GatewayError, bool]] = []
        self._retrieve_failures: list[GatewayError] = []
        self._close_failures: list[GatewayError] = []
        self.idempotency_keys: list[str | None] = []
        self.create_calls = 0
        self.retrieve_calls = 0
        self.close_calls = 0
        # When set, retrieve_session yields to the event loop for this long first.
        self.latency: float | None = None

    # === Scripting helpers ===

    def fail_next_create(self, error: GatewayError, after_create: bool = False) -> None:
        """Fail the next create; with `after_create` the session exists but the answer is lost."""
        self._create_failures.append((error, after_create))

    def fail_next_retrieve(self, error: GatewayError) -> None:
        self._retrieve_failures.append(error)

    def fail_next_close(self, error: GatewayError) -> None:
        self._close_failures.append(error)

    def complete_session(self, session_id: str, payment_intent_id: str | None = None) -> None:
        """Simulate the guest paying on the hosted page."""
        self.sessions[session_id] = replace(
            self.sessions[session_id],
            status=SessionStatus.COMPLETE,
            payment_status=SessionPaymentStatus.PAID,
            external_payment_id=payment_intent_id,
        )

    def expire_session(self, session_id: str) -> None:
        self.sessions[session_id] = replace(self.sessions[session_id], status=SessionStatus.EXPIRED)

    def add_session(self, booking_id: str, session_id: str | None = None) -> str:
        """Register a session the caller never heard about."""
        session_id = session_id or f"cs_test_{uuid4().hex[:24]}"
        self.sessions[session_id] = SessionSnapshot(
            session_id=session_id,
            status=SessionStatus.OPEN,
            payment_status=SessionPaymentStatus.UNPAID,
            booking_id=booking_id,
        )
        return session_id

    def build_event(self, event_type: str, session_id: str) -> bytes:
        snapshot = self.sessions[session_id]
        event = {
            "id": f"evt_{uuid4().hex[:24]}",
            "type": event_type,
            "data": {
                "object": {
                    "id": session_id,
                    "object": "checkout.session",
                    "status": snapshot.status.value,
                    "payment_status": snapshot.payment_status.value,
                    "payment_intent": snapshot.external_payment_id,
                    "metadata": {"booking_id": snapshot.booking_id},
                }
            },
        }
        return json.dumps(event).encode()

    # === PaymentGateway ===

    async def create_session(
        self,
        booking_id: str,
        amount: Money,
        metadata: dict[str, str],
        description: str,
        idempotency_key: str | None = None,
    ) -> SessionHandle:
        self.create_calls += 1
        self.idempotency_keys.append(idempotency_key)
        failure, after_create = self._create_failures.pop(0) if self._create_failures else (None, False)
        if failure is not None and not after_create:
            raise failure
        if idempotency_key and idempotency_key in self._by_idempotency_key:
            return self._by_idempotency_key[idempotency_key]

        session_id = self.add_session(metadata.get("booking_id", booking_id))
        self.amounts[session_id] = amount
        handle = SessionHandle(
            session_id=session_id,
            redirect_url=f"https://checkout.stripe.test/c/pay/{session_id}",
        )
        if idempotency_key:
            self._by_idempotency_key[idempotency_key] = handle
        if failure is not None:
            raise failure
        return handle

    async def retrieve_session(self, session_id: str) -> SessionSnapshot:
        self.retrieve_calls += 1
        if self.latency is not None:
            await asyncio.sleep(self.latency)
        if self._retrieve_failures:
            raise self._retrieve_failures.pop(0)
        snapshot = self.sessions.get(session_id)
        if snapshot is None:
            raise GatewayRejectedError(f"No such checkout.session: '{session_id}'")
        return replace(snapshot)

    async def close_session(self, session_id: str) -> None:
        self.close_calls += 1
        if self._close_failures:
            raise self._close_failures.pop(0)
        snapshot = self.sessions.get(session_id)
        if snapshot is None:
            raise GatewayRejectedError(f"No such checkout.session: '{session_id}'")
        if snapshot.status != SessionStatus.OPEN:
            raise GatewayRejectedError(
                f"Only Checkout Sessions with a status of open can be expired, this one is {snapshot.status.value}"
            )
        self.expire_session(session_id)

    async def verify_notification(
        self,
        raw_payload: bytes,
        signature_header: str | None,
        shared_secret: str | None,
    ) -> GatewayEvent:
        if not shared_secret or not signature_header:
            raise SignatureInvalidError("Missing signature or secret")
        parts = dict(item.split("=", 1) for item in signature_header.split(",") if "=" in item)
        timestamp, signature = parts.get("t"), parts.get("v1")
        if not timestamp or not timestamp.isdigit() or not signature:
            raise SignatureInvalidError("Malformed signature header")
        expected = sign_payload(raw_payload, shared_secret, int(timestamp)).split("v1=", 1)[1]
        if not hmac.compare_digest(expected, signature):
            raise SignatureInvalidError()
        try:
            event = json.loads(raw_payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SignatureInvalidError("Invalid notification payload") from exc
        return to_gateway_event(event)
