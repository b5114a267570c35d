"""Translation of domain errors into HTTP responses."""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from hotel_booking.domain.errors import (
    BookingMismatchError,
    BookingNotFoundError,
    BookingOwnershipError,
    DomainError,
    DuplicateSessionError,
    GatewayRejectedError,
    GatewayUnavailableError,
    IdempotencyConflictError,
    InvalidTransitionError,
    SessionNotFoundError,
    SignatureInvalidError,
    StaleRevisionError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[DomainError], int], ...] = (
    (BookingNotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (BookingOwnershipError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (StaleRevisionError, status.HTTP_409_CONFLICT),
    (BookingMismatchError, status.HTTP_409_CONFLICT),
    (IdempotencyConflictError, status.HTTP_409_CONFLICT),
    (DuplicateSessionError, status.HTTP_409_CONFLICT),
    (GatewayUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GatewayRejectedError, status.HTTP_502_BAD_GATEWAY),
    (SignatureInvalidError, status.HTTP_400_BAD_REQUEST),
)


def status_for(exc: DomainError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc)
    extra = {"path": request.url.path, "code": exc.code}
    if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        # DuplicateIdError lands here: a generated id collided.
        logger.error("Domain error", extra=extra, exc_info=exc)
        return JSONResponse(status_code=status_code, content={"detail": "Internal server error", "code": exc.code})
    if isinstance(exc, (GatewayUnavailableError, GatewayRejectedError, SignatureInvalidError)):
        logger.warning("Payment gateway request failed", extra=extra)
    else:
        logger.info("Request refused", extra=extra)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler to prevent stack trace exposure to clients.
    All unhandled exceptions are logged internally and return a generic error message.
    """
    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception occurred",
        exc_info=exc,
        extra={
            "error_id": error_id,
            "path": request.url.path,
            "method": request.method,
            "client_host": request.client.host if request.client else None,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "message": "An unexpected error occurred. Please contact support with the error_id if the issue persists.",
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
