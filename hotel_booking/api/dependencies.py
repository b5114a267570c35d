import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncEngine

from hotel_booking.application.dtos.booking_dto import Identity
from hotel_booking.application.interfaces.booking_store import BookingStore
from hotel_booking.application.interfaces.clock import Clock
from hotel_booking.application.interfaces.idempotency_repo import IdempotencyRepo
from hotel_booking.application.interfaces.payment_gateway import PaymentGateway
from hotel_booking.application.interfaces.uuid_generator import UUIDGenerator
from hotel_booking.application.orchestrator import BookingOrchestrator
from hotel_booking.application.use_cases.get_bookings import GetBookingUseCase, ListBookingsUseCase
from hotel_booking.application.use_cases.handle_payment_notification import (
    HandlePaymentNotificationUseCase,
)
from hotel_booking.application.use_cases.redact_guest_data import RedactGuestDataUseCase
from hotel_booking.config import Settings
from hotel_booking.infrastructure.db.engine import build_engine, build_sessionmaker, create_schema
from hotel_booking.infrastructure.db.repositories.booking_store_sql import BookingStoreSQL
from hotel_booking.infrastructure.db.repositories.idempotency_repo_sql import IdempotencyRepoSQL
from hotel_booking.infrastructure.gateways.stripe_gateway import StripePaymentGateway
from hotel_booking.infrastructure.in_memory.booking_store import InMemoryBookingStore
from hotel_booking.infrastructure.in_memory.idempotency_repo import InMemoryIdempotencyRepo
from hotel_booking.infrastructure.in_memory.payment_gateway import FakePaymentGateway
from hotel_booking.infrastructure.services.clock_impl import ClockImpl
from hotel_booking.infrastructure.services.uuid_generator_impl import UUIDGeneratorImpl

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request needs, built once per application lifespan."""

    settings: Settings
    store: BookingStore
    idempotency_repo: IdempotencyRepo
    gateway: PaymentGateway
    clock: Clock
    orchestrator: BookingOrchestrator
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def _build_gateway(settings: Settings) -> PaymentGateway:
    if settings.stripe_secret_key:
        return StripePaymentGateway(
            api_key=settings.stripe_secret_key,
            client_url=settings.client_url,
            timeout_seconds=settings.gateway_timeout_seconds,
            max_network_retries=settings.gateway_max_network_retries,
            fail_max=settings.breaker_fail_max,
            reset_timeout=settings.breaker_reset_timeout,
        )
    if settings.use_in_memory:
        logger.warning("STRIPE_SECRET_KEY not set, using the fake payment gateway")
        return FakePaymentGateway(client_url=settings.client_url)
    raise RuntimeError("STRIPE_SECRET_KEY is required in SQL mode")


async def build_container(
    settings: Settings,
    *,
    clock: Clock | None = None,
    uuid_generator: UUIDGenerator | None = None,
    gateway: PaymentGateway | None = None,
) -> ServiceContainer:
    clock = clock or ClockImpl()
    engine = None
    if settings.use_in_memory:
        store: BookingStore = InMemoryBookingStore(clock=clock)
        idempotency_repo: IdempotencyRepo = InMemoryIdempotencyRepo()
    else:
        engine = build_engine(settings)
        await create_schema(engine)
        session_maker = build_sessionmaker(engine)
        store = BookingStoreSQL(session_maker, clock=clock)
        idempotency_repo = IdempotencyRepoSQL(session_maker, clock=clock)

    gateway = gateway or _build_gateway(settings)
    orchestrator = BookingOrchestrator(
        store=store,
        gateway=gateway,
        idempotency_repo=idempotency_repo,
        clock=clock,
        uuid_generator=uuid_generator or UUIDGeneratorImpl(),
        default_currency=settings.default_currency,
        pending_expiry=timedelta(minutes=settings.pending_expiry_minutes),
    )
    logger.info(
        "Service container built",
        extra={"backend": "in_memory" if settings.use_in_memory else "sql", "gateway": type(gateway).__name__},
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        idempotency_repo=idempotency_repo,
        gateway=gateway,
        clock=clock,
        orchestrator=orchestrator,
        engine=engine,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_orchestrator(container: Annotated[ServiceContainer, Depends(get_container)]) -> BookingOrchestrator:
    return container.orchestrator


def get_use_cases(container: Annotated[ServiceContainer, Depends(get_container)]) -> dict:
    return {
        "handle_webhook": HandlePaymentNotificationUseCase(
            orchestrator=container.orchestrator,
            gateway=container.gateway,
            webhook_secret=container.settings.stripe_webhook_secret,
        ),
        "get_booking": GetBookingUseCase(store=container.store),
        "list_bookings": ListBookingsUseCase(store=container.store),
        "redact_guest_data": RedactGuestDataUseCase(store=container.store, clock=container.clock),
    }


def get_identity(
    user_id: str | None = Header(default=None, alias="X-User-Id"),
    user_email: str | None = Header(default=None, alias="X-User-Email"),
) -> Identity | None:
    """Caller identity as forwarded by the upstream auth layer, if any."""
    if not user_id or not user_email:
        return None
    return Identity(user_id=user_id, email=user_email)


def require_identity(identity: Annotated[Identity | None, Depends(get_identity)]) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return identity
