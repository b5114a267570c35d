"""
Pytest configuration and shared fixtures.

Provides:
- A fixed clock and predictable ids
- In-memory store, idempotency repo and fake payment gateway
- A wired BookingOrchestrator
- A FastAPI TestClient over the same in-memory container
- A SQLite (aiosqlite) session maker for the SQL store tests
"""

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from hotel_booking.api.dependencies import ServiceContainer
from hotel_booking.application.interfaces.clock import FakeClock
from hotel_booking.application.interfaces.uuid_generator import FakeUUIDGenerator
from hotel_booking.application.orchestrator import BookingOrchestrator
from hotel_booking.config import Settings
from hotel_booking.infrastructure.db.engine import build_engine, build_sessionmaker, create_schema
from hotel_booking.infrastructure.in_memory.booking_store import InMemoryBookingStore
from hotel_booking.infrastructure.in_memory.idempotency_repo import InMemoryIdempotencyRepo
from hotel_booking.infrastructure.in_memory.payment_gateway import FakePaymentGateway
from hotel_booking.main import create_app

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
WEBHOOK_SECRET = "whsec_test_secret"


def booking_payload(**overrides) -> dict:
    """A request the validator accepts, relative to TODAY."""
    payload = {
        "hotel_id": "H1",
        "hotel_name": "Marina Bay Hotel",
        "destination_id": "SG-001",
        "start_date": (TODAY + timedelta(days=1)).isoformat(),
        "end_date": (TODAY + timedelta(days=3)).isoformat(),
        "adults": 2,
        "children": 0,
        "room_types": ["Deluxe King"],
        "total_price": "500.00",
        "currency": "SGD",
        "salutation": "Ms",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "a@b.com",
        "phone": "+6591234567",
        "message_to_hotel": "Late arrival",
    }
    payload.update(overrides)
    return payload


# ============================================================================
# DOMAIN / APPLICATION FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def uuid_generator() -> FakeUUIDGenerator:
    return FakeUUIDGenerator()


@pytest.fixture
def store(clock) -> InMemoryBookingStore:
    return InMemoryBookingStore(clock=clock)


@pytest.fixture
def idempotency_repo() -> InMemoryIdempotencyRepo:
    return InMemoryIdempotencyRepo()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def orchestrator(store, gateway, idempotency_repo, clock, uuid_generator) -> BookingOrchestrator:
    return BookingOrchestrator(
        store=store,
        gateway=gateway,
        idempotency_repo=idempotency_repo,
        clock=clock,
        uuid_generator=uuid_generator,
        default_currency="SGD",
        pending_expiry=timedelta(minutes=60),
    )


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        use_in_memory=True,
        database_url=None,
        stripe_secret_key=None,
        stripe_webhook_secret=WEBHOOK_SECRET,
        log_level="DEBUG",
    )


@pytest.fixture
def container(settings, store, idempotency_repo, gateway, clock, orchestrator) -> ServiceContainer:
    return ServiceContainer(
        settings=settings,
        store=store,
        idempotency_repo=idempotency_repo,
        gateway=gateway,
        clock=clock,
        orchestrator=orchestrator,
    )


@pytest.fixture
def app(container):
    return create_app(container=container)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """SQLite file database, fresh for every test."""
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}", use_in_memory=False)
    engine = build_engine(settings)
    await create_schema(engine)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def tomorrow() -> date:
    return TODAY + timedelta(days=1)
