from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from hotel_booking.api.dependencies import get_orchestrator
from hotel_booking.api.schemas.bookings import BookingResponse, ExpiryReportResponse
from hotel_booking.application.orchestrator import BookingOrchestrator

router = APIRouter()


@router.post(
    "/workers/bookings/expire",
    response_model=ExpiryReportResponse,
    status_code=status.HTTP_200_OK,
)
async def expire_pending_bookings(
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
    older_than_minutes: int | None = Query(default=None, ge=1),
) -> ExpiryReportResponse:
    """
    Run the expiry policy over stuck pending bookings.

    Meant to be triggered by a scheduler; safe to run concurrently since every
    transition goes through the store's compare-and-set.
    """
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes else None
    report = await orchestrator.expire_pending(older_than)
    return ExpiryReportResponse.from_report(report)


@router.post(
    "/workers/bookings/{booking_id}/complete",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def complete_booking(
    booking_id: str,
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
) -> BookingResponse:
    """Mark a confirmed stay as completed once the guest checked out."""
    booking = await orchestrator.complete(booking_id)
    return BookingResponse.from_entity(booking)
