import asyncio
import json
import logging
from functools import partial
from typing import Any, Callable

import stripe

from hotel_booking.application.interfaces.payment_gateway import (
    GatewayEvent,
    PaymentGateway,
    SessionHandle,
    SessionSnapshot,
)
from hotel_booking.domain.entities.payment_session import SessionPaymentStatus, SessionStatus
from hotel_booking.domain.errors import (
    GatewayRejectedError,
    GatewayUnavailableError,
    SignatureInvalidError,
)
from hotel_booking.domain.value_objects.money import Money
from hotel_booking.infrastructure.circuit_breaker import CircuitBreakerError, build_breaker
from hotel_booking.infrastructure.gateways.stripe_events import to_gateway_event

logger = logging.getLogger(__name__)

# The gateway answered: a retry with the same input gets the same answer.
REJECTION_ERRORS = (
    stripe.InvalidRequestError,
    stripe.CardError,
    stripe.AuthenticationError,
    stripe.PermissionError,
    stripe.IdempotencyError,
)


class StripePaymentGateway(PaymentGateway):
    """
    PaymentGateway on Stripe Checkout.

    The Stripe SDK is synchronous, so each call runs in a worker thread under
    an overall timeout, wrapped by a circuit breaker that only counts
    availability failures.
    """

    def __init__(
        self,
        api_key: str,
        client_url: str,
        timeout_seconds: float = 10.0,
        max_network_retries: int = 2,
        fail_max: int = 5,
        reset_timeout: int = 60,
        client: stripe.StripeClient | None = None,
    ) -> None:
        self._client_url = client_url.rstrip("/")
        self._timeout = timeout_seconds

        # Stripe SDK doesn't support async timeouts directly, so we configure
        # the underlying connection timeout too
        self._client = client or stripe.StripeClient(
            api_key,
            http_client=stripe.RequestsClient(timeout=timeout_seconds),
            max_network_retries=max_network_retries,
        )

        self._breaker = build_breaker(
            "stripe",
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=REJECTION_ERRORS,
        )

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._breaker.call, partial(func, **kwargs)),
                timeout=self._timeout,
            )
        except CircuitBreakerError as exc:
            logger.error(
                "Stripe circuit breaker is open - service unavailable",
                extra={"operation": operation, "circuit_state": str(exc)},
            )
            raise GatewayUnavailableError("Payment gateway temporarily unavailable") from exc
        except asyncio.TimeoutError as exc:
            logger.error("Stripe call timed out", extra={"operation": operation, "timeout": self._timeout})
            raise GatewayUnavailableError("Payment gateway timed out") from exc
        except REJECTION_ERRORS as exc:
            logger.warning(
                "Stripe rejected request",
                extra={"operation": operation, "stripe_code": getattr(exc, "code", None)},
            )
            raise GatewayRejectedError(exc.user_message or str(exc)) from exc
        except stripe.StripeError as exc:
            # APIConnectionError, RateLimitError, APIError and anything unknown.
            logger.error("Stripe API error", exc_info=exc, extra={"operation": operation})
            raise GatewayUnavailableError(exc.user_message or "Payment gateway unavailable") from exc

    async def create_session(
        self,
        booking_id: str,
        amount: Money,
        metadata: dict[str, str],
        description: str,
        idempotency_key: str | None = None,
    ) -> SessionHandle:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": amount.currency_code.lower(),
                        "product_data": {"name": "Hotel booking", "description": description},
                        "unit_amount": amount.to_minor_units(),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": (
                f"{self._client_url}/booking-success"
                f"?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking_id}"
            ),
            "cancel_url": f"{self._client_url}/booking-cancel?booking_id={booking_id}",
            "client_reference_id": booking_id,
            "metadata": {**metadata, "booking_id": booking_id},
        }
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        session = await self._call(
            "create_session",
            self._client.checkout.sessions.create,
            params=params,
            options=options,
        )
        logger.info(
            "Stripe checkout session created",
            extra={"booking_id": booking_id, "session_id": session["id"]},
        )
        return SessionHandle(session_id=session["id"], redirect_url=session["url"])

    async def retrieve_session(self, session_id: str) -> SessionSnapshot:
        session = await self._call(
            "retrieve_session",
            self._client.checkout.sessions.retrieve,
            session=session_id,
        )
        payment_intent = session.get("payment_intent")
        if isinstance(payment_intent, dict):
            payment_intent = payment_intent.get("id")
        metadata = session.get("metadata") or {}
        return SessionSnapshot(
            session_id=session["id"],
            status=SessionStatus(session.get("status") or SessionStatus.OPEN.value),
            payment_status=SessionPaymentStatus(
                session.get("payment_status") or SessionPaymentStatus.UNPAID.value
            ),
            external_payment_id=payment_intent,
            booking_id=metadata.get("booking_id") or session.get("client_reference_id"),
        )

    async def close_session(self, session_id: str) -> None:
        await self._call(
            "close_session",
            self._client.checkout.sessions.expire,
            session=session_id,
        )
        logger.info("Stripe checkout session expired", extra={"session_id": session_id})

    async def verify_notification(
        self,
        raw_payload: bytes,
        signature_header: str | None,
        shared_secret: str | None,
    ) -> GatewayEvent:
        if not shared_secret:
            raise SignatureInvalidError("Webhook secret is not configured")
        if not signature_header:
            raise SignatureInvalidError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(
                payload=raw_payload.decode(),
                sig_header=signature_header,
                secret=shared_secret,
            )
            event = json.loads(raw_payload.decode())
        except stripe.SignatureVerificationError as exc:
            raise SignatureInvalidError("Invalid Stripe signature") from exc
        except (UnicodeDecodeError, ValueError) as exc:
            raise SignatureInvalidError("Invalid Stripe webhook payload") from exc
        return to_gateway_event(event)
