import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hotel_booking.api.dependencies import ServiceContainer, build_container
from hotel_booking.api.error_handlers import register_exception_handlers
from hotel_booking.api.routers.bookings import router as bookings_router
from hotel_booking.api.routers.health import router as health_router
from hotel_booking.api.routers.payments import router as payments_router
from hotel_booking.api.routers.worker import router as worker_router
from hotel_booking.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, container: ServiceContainer | None = None) -> FastAPI:
    """
    Build the application.

    A prebuilt `container` (tests) is used as is and left open on shutdown;
    otherwise one is built from `settings` when the lifespan starts.
    """
    settings = settings or (container.settings if container else get_settings())

    # Configure structured logging
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or await build_container(settings)
        yield
        if owned:
            await app.state.container.aclose()

    app = FastAPI(
        title="Hotel Booking API",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    app.include_router(health_router, tags=["Health"])
    app.include_router(bookings_router, prefix="/api/v1", tags=["Bookings"])
    app.include_router(payments_router, prefix="/api/v1", tags=["Payments"])
    app.include_router(worker_router, prefix="/api/v1", tags=["Worker"])
    return app


app = create_app()
