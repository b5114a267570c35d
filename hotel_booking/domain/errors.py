"""Domain exceptions for the hotel booking service."""


class DomainError(Exception):
    """Base class for every domain error."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


# === Booking errors ===


class BookingNotFoundError(DomainError):
    """The booking does not exist."""

    def __init__(self, booking_id: str):
        super().__init__(
            message=f"Booking not found: {booking_id}",
            code="BOOKING_NOT_FOUND",
        )
        self.booking_id = booking_id


class DuplicateIdError(DomainError):
    """A booking with the same id is already stored."""

    def __init__(self, booking_id: str):
        super().__init__(
            message=f"A booking already exists with id: {booking_id}",
            code="DUPLICATE_BOOKING_ID",
        )
        self.booking_id = booking_id


class InvalidTransitionError(DomainError):
    """The requested status is not reachable from the current one."""

    def __init__(self, booking_id: str, current_status: str, new_status: str):
        super().__init__(
            message=f"Booking {booking_id} cannot move from '{current_status}' to '{new_status}'",
            code="INVALID_TRANSITION",
        )
        self.booking_id = booking_id
        self.current_status = current_status
        self.new_status = new_status


class StaleRevisionError(DomainError):
    """Optimistic concurrency conflict on a status transition."""

    def __init__(self, booking_id: str, expected_revision: int, actual_revision: int):
        super().__init__(
            message=f"Concurrent update on booking {booking_id}: "
            f"expected revision {expected_revision}, found {actual_revision}",
            code="STALE_REVISION",
        )
        self.booking_id = booking_id
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision


class BookingOwnershipError(DomainError):
    """The caller is not the guest the booking belongs to."""

    def __init__(self, booking_id: str):
        super().__init__(
            message=f"Booking {booking_id} does not belong to the caller",
            code="BOOKING_NOT_OWNED",
        )
        self.booking_id = booking_id


# === Payment session errors ===


class SessionNotFoundError(DomainError):
    """No booking can be correlated to the payment session."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Payment session not found: {session_id}",
            code="SESSION_NOT_FOUND",
        )
        self.session_id = session_id


class DuplicateSessionError(DomainError):
    """The session id is already mapped to a different booking."""

    def __init__(self, session_id: str, booking_id: str, existing_booking_id: str):
        super().__init__(
            message=f"Session {session_id} already belongs to booking {existing_booking_id}, "
            f"refusing to map it to {booking_id}",
            code="DUPLICATE_SESSION",
        )
        self.session_id = session_id
        self.booking_id = booking_id
        self.existing_booking_id = existing_booking_id


class BookingMismatchError(DomainError):
    """The booking claimed by a caller differs from the one the session belongs to."""

    def __init__(self, session_id: str, claimed_booking_id: str, actual_booking_id: str):
        super().__init__(
            message=f"Session {session_id} belongs to booking {actual_booking_id}, "
            f"not {claimed_booking_id}",
            code="BOOKING_MISMATCH",
        )
        self.session_id = session_id
        self.claimed_booking_id = claimed_booking_id
        self.actual_booking_id = actual_booking_id


# === Gateway errors ===


class GatewayError(DomainError):
    """Base class for payment gateway failures."""

    retryable = False


class GatewayUnavailableError(GatewayError):
    """Network failure, timeout, 5xx or open circuit. Safe to retry."""

    retryable = True

    def __init__(self, message: str = "Payment gateway unavailable"):
        super().__init__(message=message, code="GATEWAY_UNAVAILABLE")


class GatewayRejectedError(GatewayError):
    """The gateway refused the request (4xx). Retrying the same input will not help."""

    def __init__(self, message: str = "Payment gateway rejected the request"):
        super().__init__(message=message, code="GATEWAY_REJECTED")


class SignatureInvalidError(DomainError):
    """An inbound notification was not produced by the gateway."""

    def __init__(self, message: str = "Invalid notification signature"):
        super().__init__(message=message, code="SIGNATURE_INVALID")


# === Idempotency errors ===


class IdempotencyConflictError(DomainError):
    """Same idempotency key reused with a different request."""

    def __init__(self, idem_key: str, scope: str):
        super().__init__(
            message=f"Idempotency conflict: key '{idem_key}' in scope '{scope}' "
            f"was already used with a different request",
            code="IDEMPOTENCY_CONFLICT",
        )
        self.idem_key = idem_key
        self.scope = scope
