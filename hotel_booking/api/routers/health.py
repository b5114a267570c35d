"""
Health check endpoints for monitoring and orchestration (K8s, Docker, etc.)

- /health: Basic liveness check (always returns 200)
- /health/live: Alias of /health
- /health/db: Database connectivity check
- /health/ready: Readiness check (all dependencies healthy)
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from hotel_booking.api.dependencies import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "hotel-booking-api"


async def _database_healthy(container: ServiceContainer) -> bool:
    if container.engine is None:
        return True
    try:
        async with container.engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            result.scalar()
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed", exc_info=e)
        return False


@router.get("/health")
async def health_check():
    """
    Basic liveness check.

    Returns 200 OK if the application is running.
    """
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/live")
async def health_check_live():
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/db")
async def health_check_db(container: Annotated[ServiceContainer, Depends(get_container)]):
    backend = "in_memory" if container.engine is None else "sql"
    if await _database_healthy(container):
        return {"status": "healthy", "component": "database", "backend": backend}
    return JSONResponse(
        status_code=503,
        content={
            "status": "unhealthy",
            "component": "database",
            "error": "Database connection failed",
        },
    )


@router.get("/health/ready")
async def health_check_ready(container: Annotated[ServiceContainer, Depends(get_container)]):
    """
    Readiness check.

    Returns 503 if the database is unreachable.
    """
    health_status = {"status": "ready", "checks": {}}
    if await _database_healthy(container):
        health_status["checks"]["database"] = "healthy"
    else:
        health_status["status"] = "not_ready"
        health_status["checks"]["database"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)
    health_status["checks"]["payment_webhooks"] = (
        "configured" if container.settings.stripe_webhook_secret else "not_configured"
    )
    return health_status
