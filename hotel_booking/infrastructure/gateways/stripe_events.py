"""Translation of Stripe checkout events into GatewayEvent."""

from typing import Any, Mapping

from hotel_booking.application.interfaces.payment_gateway import GatewayEvent

CHECKOUT_SESSION_PREFIX = "checkout.session."


def to_gateway_event(event: Mapping[str, Any]) -> GatewayEvent:
    data = event.get("data") or {}
    obj = data.get("object") or {}
    session_id = None
    booking_id = None
    if str(event.get("type", "")).startswith(CHECKOUT_SESSION_PREFIX):
        session_id = obj.get("id")
        booking_id = (obj.get("metadata") or {}).get("booking_id") or obj.get("client_reference_id")
    return GatewayEvent(
        event_id=event.get("id"),
        event_type=str(event.get("type", "")),
        session_id=session_id,
        booking_id=booking_id,
        data=dict(obj),
    )
