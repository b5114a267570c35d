import json
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from hotel_booking.api.dependencies import get_identity, get_orchestrator, get_use_cases, require_identity
from hotel_booking.api.schemas.bookings import (
    BookingCreatedResponse,
    BookingResponse,
    PaymentSetupFailedResponse,
    RedactionResponse,
    ValidationErrorResponse,
)
from hotel_booking.application.dtos.booking_dto import (
    BookingCreated,
    Identity,
    PaymentSetupFailed,
    ValidationFailure,
)
from hotel_booking.application.orchestrator import BookingOrchestrator

router = APIRouter()


def _creation_response(
    result: BookingCreated | PaymentSetupFailed | ValidationFailure,
    success_status: int,
) -> JSONResponse:
    if isinstance(result, ValidationFailure):
        body = ValidationErrorResponse.from_failure(result)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))
    if isinstance(result, PaymentSetupFailed):
        body = PaymentSetupFailedResponse.from_result(result)
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body.model_dump(mode="json"))
    body = BookingCreatedResponse.from_result(result)
    return JSONResponse(status_code=success_status, content=body.model_dump(mode="json"))


@router.post(
    "/bookings",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ValidationErrorResponse}, 502: {"model": PaymentSetupFailedResponse}},
)
async def create_booking(
    request: Request,
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
    identity: Annotated[Identity | None, Depends(get_identity)],
    idem_key: str | None = Header(default=None, convert_underscores=False, alias="Idempotency-Key"),
) -> JSONResponse:
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body or b"null")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from exc
    result = await orchestrator.create(payload, identity=identity, idempotency_key=idem_key)
    return _creation_response(result, status.HTTP_201_CREATED)


@router.post(
    "/bookings/{booking_id}/payment",
    response_model=BookingCreatedResponse,
    status_code=status.HTTP_200_OK,
    responses={502: {"model": PaymentSetupFailedResponse}},
)
async def retry_booking_payment(
    booking_id: str,
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    result = await orchestrator.retry_payment(booking_id)
    return _creation_response(result, status.HTTP_200_OK)


@router.post(
    "/bookings/{booking_id}/cancel",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(
    booking_id: str,
    orchestrator: Annotated[BookingOrchestrator, Depends(get_orchestrator)],
    identity: Annotated[Identity, Depends(require_identity)],
) -> BookingResponse:
    booking = await orchestrator.cancel(booking_id, identity=identity)
    return BookingResponse.from_entity(booking)


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def get_booking(
    booking_id: str,
    use_cases: Annotated[dict, Depends(get_use_cases)],
    identity: Annotated[Identity, Depends(require_identity)],
) -> BookingResponse:
    booking = await use_cases["get_booking"].execute(booking_id, identity=identity)
    return BookingResponse.from_entity(booking)


@router.get(
    "/bookings",
    response_model=list[BookingResponse],
    status_code=status.HTTP_200_OK,
)
async def list_my_bookings(
    use_cases: Annotated[dict, Depends(get_use_cases)],
    identity: Annotated[Identity, Depends(require_identity)],
) -> list[BookingResponse]:
    bookings = await use_cases["list_bookings"].execute(identity)
    return [BookingResponse.from_entity(b) for b in bookings]


@router.delete(
    "/users/me/data",
    response_model=RedactionResponse,
    status_code=status.HTTP_200_OK,
)
async def redact_my_data(
    use_cases: Annotated[dict, Depends(get_use_cases)],
    identity: Annotated[Identity, Depends(require_identity)],
) -> RedactionResponse:
    redacted = await use_cases["redact_guest_data"].execute(identity)
    return RedactionResponse(redacted=redacted)
