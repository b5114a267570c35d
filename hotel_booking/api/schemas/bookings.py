from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, constr

from hotel_booking.application.dtos.booking_dto import (
    BookingCreated,
    ExpiryReport,
    FinalizeOutcome,
    PaymentSetupFailed,
    ValidationFailure,
)
from hotel_booking.domain.entities.booking import Booking, BookingStatus, RetryToken


class ValidationIssueSchema(BaseModel):
    field: str
    code: str
    message: str


class ValidationErrorResponse(BaseModel):
    detail: str = "Validation failed"
    errors: list[str]
    issues: list[ValidationIssueSchema]

    @classmethod
    def from_failure(cls, failure: ValidationFailure) -> "ValidationErrorResponse":
        return cls(
            errors=failure.messages,
            issues=[
                ValidationIssueSchema(field=i.field, code=i.code, message=i.message)
                for i in failure.issues
            ],
        )


class RetryTokenSchema(BaseModel):
    reason: str
    error_code: str
    failed_at: datetime
    attempt: int
    retryable: bool

    @classmethod
    def from_token(cls, token: RetryToken | None) -> "RetryTokenSchema | None":
        if token is None:
            return None
        return cls(**token.to_dict())


class BookingCreatedResponse(BaseModel):
    booking_id: str
    session_id: str
    redirect_url: str
    status: BookingStatus

    @classmethod
    def from_result(cls, result: BookingCreated) -> "BookingCreatedResponse":
        return cls(
            booking_id=result.booking_id,
            session_id=result.session_id,
            redirect_url=result.redirect_url,
            status=result.status,
        )


class PaymentSetupFailedResponse(BaseModel):
    detail: str
    booking_id: str
    status: BookingStatus
    retryable: bool
    retry_token: RetryTokenSchema

    @classmethod
    def from_result(cls, result: PaymentSetupFailed) -> "PaymentSetupFailedResponse":
        return cls(
            detail="Booking saved but payment could not be started",
            booking_id=result.booking_id,
            status=result.status,
            retryable=result.retryable,
            retry_token=RetryTokenSchema.from_token(result.retry_token),
        )


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    hotel_id: str
    hotel_name: str | None = None
    destination_id: str | None = None
    start_date: date
    end_date: date
    nights: int
    adults: int
    children: int
    room_types: list[str] = Field(default_factory=list)
    total_price: Decimal
    currency: str
    salutation: str | None = None
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    message_to_hotel: str | None = None
    status: BookingStatus
    payment_reference: str | None = None
    retry_token: RetryTokenSchema | None = None
    revision: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingResponse":
        data: dict[str, Any] = {
            name: getattr(booking, name)
            for name in cls.model_fields
            if name != "retry_token"
        }
        data["retry_token"] = RetryTokenSchema.from_token(booking.retry_token)
        return cls(**data)


class FinalizeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    session_id: constr(strip_whitespace=True, min_length=1, max_length=255)
    booking_id: str | None = None


class FinalizeResponse(BaseModel):
    booking_id: str
    session_id: str
    status: BookingStatus
    payment_reference: str | None = None
    paid: bool
    transitioned: bool

    @classmethod
    def from_outcome(cls, outcome: FinalizeOutcome) -> "FinalizeResponse":
        return cls(
            booking_id=outcome.booking_id,
            session_id=outcome.session_id,
            status=outcome.status,
            payment_reference=outcome.payment_reference,
            paid=outcome.paid,
            transitioned=outcome.transitioned,
        )


class WebhookAck(BaseModel):
    received: bool = True
    action: str | None = None


class RedactionResponse(BaseModel):
    redacted: int


class ExpiryReportResponse(BaseModel):
    expired: list[str]
    confirmed: list[str]
    skipped: list[str]

    @classmethod
    def from_report(cls, report: ExpiryReport) -> "ExpiryReportResponse":
        return cls(expired=report.expired, confirmed=report.confirmed, skipped=report.skipped)
