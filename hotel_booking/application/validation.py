"""
Reservation request validation.

`validate` is a pure function: it never raises for malformed input, performs no
I/O and returns the same issues for the same (payload, today) pair. Checks run
in a fixed order, one pydantic model per phase: required fields, email shape,
dates, numeric bounds and string length ceilings. Within a phase a field is
reported at most once.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    StrictStr,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    condecimal,
    conint,
    constr,
    field_validator,
)
from pydantic_core import PydanticCustomError

from hotel_booking.application.dtos.booking_dto import ReservationRequest, ValidationIssue

MAX_TOTAL_PRICE = Decimal("99999.99")

REQUIRED_MESSAGES = {
    "hotel_id": "Hotel ID is required",
    "start_date": "Check-in date is required",
    "end_date": "Check-out date is required",
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "email": "Email is required",
    "total_price": "Valid total price is required",
}

# (field, pydantic error type) -> (code, message); "*" is the field's fallback.
ERROR_MESSAGES: dict[tuple[str, str], tuple[str, str]] = {
    ("start_date", "*"): ("invalid_format", "Invalid check-in date"),
    ("end_date", "*"): ("invalid_format", "Invalid check-out date"),
    ("total_price", "greater_than"): ("out_of_range", "Total price must be greater than 0"),
    ("total_price", "less_than_equal"): ("out_of_range", "Price exceeds maximum allowed amount"),
    ("total_price", "decimal_max_places"): (
        "invalid_precision",
        "Total price must have at most 2 decimal places",
    ),
    ("total_price", "*"): ("invalid_number", "Invalid numeric value"),
    ("adults", "greater_than_equal"): ("out_of_range", "At least 1 adult required"),
    ("adults", "less_than_equal"): ("out_of_range", "Adults count must be between 1 and 10"),
    ("adults", "*"): ("invalid_number", "Invalid guest count"),
    ("children", "greater_than_equal"): ("out_of_range", "Children count must be between 0 and 10"),
    ("children", "less_than_equal"): ("out_of_range", "Children count must be between 0 and 10"),
    ("children", "*"): ("invalid_number", "Invalid guest count"),
    ("room_types", "*"): ("invalid_type", "Room types must be a list of names"),
    ("hotel_id", "string_too_long"): ("too_long", "Hotel ID too long"),
    ("hotel_name", "string_too_long"): ("too_long", "Hotel name too long"),
    ("destination_id", "string_too_long"): ("too_long", "Destination ID too long"),
    ("salutation", "string_too_long"): ("too_long", "Salutation too long"),
    ("first_name", "string_too_long"): ("too_long", "First name too long"),
    ("last_name", "string_too_long"): ("too_long", "Last name too long"),
    ("email", "string_too_long"): ("too_long", "Email too long"),
    ("phone", "string_too_long"): ("too_long", "Phone number too long"),
    ("message_to_hotel", "string_too_long"): ("too_long", "Message to hotel too long"),
    ("currency", "*"): ("invalid_format", "Currency must be a 3-letter ISO code"),
}

# Raised by the validators below with their final message.
CUSTOM_CODES = frozenset({"required", "invalid_format", "invalid_number", "not_in_future", "before_start"})


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class RequiredFields(BaseModel):
    """Presence of mandatory fields and the type of every text field."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_default=True)

    hotel_id: StrictStr | None = None
    start_date: Any = None
    end_date: Any = None
    first_name: StrictStr | None = None
    last_name: StrictStr | None = None
    email: StrictStr | None = None
    total_price: Any = None
    hotel_name: StrictStr | None = None
    destination_id: StrictStr | None = None
    salutation: StrictStr | None = None
    phone: StrictStr | None = None
    message_to_hotel: StrictStr | None = None
    currency: StrictStr | None = None

    @field_validator(*REQUIRED_MESSAGES, mode="before")
    @classmethod
    def validate_present(cls, value: Any, info: ValidationInfo) -> Any:
        if _is_blank(value):
            raise PydanticCustomError("required", REQUIRED_MESSAGES[info.field_name])
        return value


EMAIL_ADAPTER = TypeAdapter(EmailStr)


class StayDates(BaseModel):
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def validate_date_input(cls, value: Any, info: ValidationInfo) -> Any:
        if _is_blank(value):
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, (date, str)):
            return value
        raise PydanticCustomError("invalid_format", ERROR_MESSAGES[(info.field_name, "*")][1])

    @field_validator("start_date")
    @classmethod
    def validate_in_future(cls, value: date | None, info: ValidationInfo) -> date | None:
        today = (info.context or {}).get("today")
        if value is not None and today is not None and value <= today:
            raise PydanticCustomError("not_in_future", "Check-in date must be in the future")
        return value

    @field_validator("end_date")
    @classmethod
    def validate_after_start(cls, value: date | None, info: ValidationInfo) -> date | None:
        start = info.data.get("start_date")
        if value is not None and start is not None and value <= start:
            raise PydanticCustomError("before_start", "Check-out date must be after check-in date")
        return value


class Amounts(BaseModel):
    total_price: condecimal(gt=0, le=MAX_TOTAL_PRICE, decimal_places=2) | None = None
    adults: conint(ge=1, le=10) | None = None
    children: conint(ge=0, le=10) | None = None
    room_types: list[constr(strict=True, strip_whitespace=True, min_length=1)] | None = None

    @field_validator("total_price", "adults", "children", mode="before")
    @classmethod
    def validate_number_input(cls, value: Any, info: ValidationInfo) -> Any:
        if isinstance(value, bool):
            raise PydanticCustomError(*ERROR_MESSAGES[(info.field_name, "*")])
        if info.field_name == "total_price" and _is_blank(value):
            return None
        return value


class TextLengths(BaseModel):
    hotel_id: constr(strip_whitespace=True, max_length=255) | None = None
    hotel_name: constr(strip_whitespace=True, max_length=255) | None = None
    destination_id: constr(strip_whitespace=True, max_length=255) | None = None
    salutation: constr(strip_whitespace=True, max_length=10) | None = None
    first_name: constr(strip_whitespace=True, max_length=100) | None = None
    last_name: constr(strip_whitespace=True, max_length=100) | None = None
    email: constr(strip_whitespace=True, max_length=100) | None = None
    phone: constr(strip_whitespace=True, max_length=20) | None = None
    message_to_hotel: constr(strip_whitespace=True, max_length=1000) | None = None
    currency: constr(strip_whitespace=True, pattern=r"^[A-Za-z]{3}$") | None = None


def _describe(name: str, error: Mapping[str, Any]) -> tuple[str, str]:
    kind = error["type"]
    if kind in CUSTOM_CODES:
        return kind, error["msg"]
    if kind == "string_type" and len(error["loc"]) == 1:
        return "invalid_type", f"Invalid data type for {name}"
    return ERROR_MESSAGES.get((name, kind)) or ERROR_MESSAGES.get((name, "*")) or (kind, error["msg"])


def _to_issues(exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for error in exc.errors():
        name = str(error["loc"][0]) if error["loc"] else "body"
        if name in seen:
            continue
        seen.add(name)
        code, message = _describe(name, error)
        issues.append(ValidationIssue(field=name, code=code, message=message))
    return issues


def _run(model: type[BaseModel], data: Mapping[str, Any], **context: Any) -> list[ValidationIssue]:
    try:
        model.model_validate(data, context=context or None)
    except ValidationError as exc:
        return _to_issues(exc)
    return []


def _check_email(payload: Mapping[str, Any]) -> list[ValidationIssue]:
    email = payload.get("email")
    if not isinstance(email, str) or not email.strip():
        return []
    try:
        EMAIL_ADAPTER.validate_python(email.strip())
    except ValidationError:
        return [ValidationIssue(field="email", code="invalid_format", message="Invalid email format")]
    return []


def validate(payload: Any, *, today: date) -> list[ValidationIssue]:
    """
    Check a reservation request against structural and business rules.

    Args:
        payload: Decoded request body. Anything that is not a mapping is itself
            reported as an issue.
        today: Reference date for the "check-in in the future" rule.

    Returns:
        Issues found, in check order. Empty iff the request is acceptable.
    """
    if not isinstance(payload, Mapping):
        return [ValidationIssue(field="body", code="invalid_type", message="Request body must be a JSON object")]

    data = dict(payload)
    texts = {name: value for name, value in data.items() if isinstance(value, str)}
    issues: list[ValidationIssue] = []
    issues.extend(_run(RequiredFields, data))
    issues.extend(_check_email(data))
    issues.extend(_run(StayDates, data, today=today))
    issues.extend(_run(Amounts, data))
    issues.extend(_run(TextLengths, texts))
    return issues


def parse_request(payload: Mapping[str, Any], default_currency: str = "SGD") -> ReservationRequest:
    """
    Build a typed request from a payload `validate` accepted.

    Raises pydantic.ValidationError (a ValueError) for a payload that was not
    validated first.
    """
    data = dict(payload)
    fields = RequiredFields.model_validate(data)
    dates = StayDates.model_validate(data)
    amounts = Amounts.model_validate(data)
    if dates.start_date is None or dates.end_date is None or amounts.total_price is None:
        raise ValueError("parse_request called with an unvalidated payload")
    return ReservationRequest(
        hotel_id=fields.hotel_id,
        start_date=dates.start_date,
        end_date=dates.end_date,
        total_price=amounts.total_price,
        currency=(fields.currency or default_currency).upper(),
        first_name=fields.first_name,
        last_name=fields.last_name,
        email=fields.email,
        adults=amounts.adults if amounts.adults is not None else 1,
        children=amounts.children if amounts.children is not None else 0,
        room_types=list(amounts.room_types or []),
        hotel_name=fields.hotel_name or None,
        destination_id=fields.destination_id or None,
        salutation=fields.salutation or None,
        phone=fields.phone or None,
        message_to_hotel=fields.message_to_hotel or None,
    )
