"""
Health check endpoints for orchestration.

- /health, /health/live: liveness, always 200 while the process runs
- /health/db: database connectivity (skipped in in-memory mode)
- /health/ready: readiness, database plus background sweepers
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db_session
from app.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "experience-booking-engine"


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": SERVICE_NAME}


@router.get("/health/live")
async def health_check_live():
    """Alias of /health for orchestrators that expect the /live suffix."""
    return {"status": "ok", "service": SERVICE_NAME}


async def _database_ok(session: AsyncSession) -> bool:
    try:
        result = await session.execute(text("SELECT 1"))
        result.scalar()
        return True
    except Exception as e:
        logger.error("Database health check failed", exc_info=e)
        return False


@router.get("/health/db")
async def health_check_db(
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_db_session),
):
    if settings.use_in_memory:
        return {"status": "healthy", "component": "database", "mode": "in_memory"}
    if await _database_ok(session):
        return {"status": "healthy", "component": "database"}
    return JSONResponse(
        status_code=503,
        content={
            "status": "unhealthy",
            "component": "database",
            "error": "Database connection failed",
        },
    )


@router.get("/health/ready")
async def health_check_ready(
    request: Request,
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Readiness check.

    Not ready when the database is unreachable. Stopped sweepers are
    reported but do not fail readiness: the HTTP surface still works.
    """
    health_status = {"status": "ready", "checks": {}}

    if settings.use_in_memory:
        health_status["checks"]["database"] = "in_memory"
    elif await _database_ok(session):
        health_status["checks"]["database"] = "healthy"
    else:
        health_status["status"] = "not_ready"
        health_status["checks"]["database"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    sweepers = getattr(request.app.state, "sweepers", None) or []
    health_status["checks"]["sweepers"] = {
        sweeper.name: "running" if sweeper.is_running else "stopped" for sweeper in sweepers
    }
    return health_status
