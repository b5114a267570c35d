from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from hotel_booking.api.dependencies import get_orchestrator, get_use_cases
from hotel_booking.api.schemas.bookings import FinalizeRequest, FinalizeResponse, WebhookAck
from hotel_booking.application.orchestrator import BookingOrchestrator

router = APIRouter()


@router.post(
    "/payments/finalize",
    response_model=FinalizeResponse,
    status_code=status.HTTP_200_OK,
)
async def finalize_payment(
    payload: FinalizeRequest,
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
) -> FinalizeResponse:
    """Client-side confirmation after the checkout page redirects back."""
    outcome = await orchestrator.finalize(payload.session_id, booking_id_hint=payload.booking_id)
    return FinalizeResponse.from_outcome(outcome)


@router.post("/webhooks/stripe", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    use_cases: Annotated[dict, Depends(get_use_cases)],
) -> WebhookAck:
    raw_body = await request.body()
    signature = request.headers.get("Stripe-Signature")
    handled = await use_cases["handle_webhook"].execute(raw_body=raw_body, signature=signature)
    return WebhookAck(received=True, action=handled.action)
