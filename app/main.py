import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.dependencies import SWEEP_NAMES, get_clock, make_sweep_cycle, sweep_intervals
from app.api.deps import engine
from app.api.routers.admin import router as admin_router
from app.api.routers.bookings import router as bookings_router
from app.api.routers.health import router as health_router
from app.api.routers.webhooks import router as webhooks_router
from app.api.routers.worker import router as worker_router
from app.config import get_settings
from app.domain.errors import DomainError, OutsideWindowError
from app.infrastructure.db.tables import metadata
from app.infrastructure.messaging.sweeper_worker import PeriodicSweeper

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.use_in_memory:
        # Initialize DB tables (for dev/demo purposes)
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    app.state.sweepers = []
    tasks = []
    if settings.run_sweepers:
        intervals = sweep_intervals(settings)
        for name in SWEEP_NAMES:
            sweeper = PeriodicSweeper(
                name=name,
                run_cycle=make_sweep_cycle(name, settings),
                clock=get_clock(),
                interval_seconds=intervals[name],
            )
            app.state.sweepers.append(sweeper)
            tasks.append(asyncio.create_task(sweeper.start()))

    yield

    # Cleanup
    for sweeper in app.state.sweepers:
        await sweeper.stop()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    await engine.dispose()


app = FastAPI(
    title="Experience Booking Engine",
    version="0.1.0",
    lifespan=lifespan
)


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Business rejections are regular responses carrying a stable code."""
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, OutsideWindowError):
        content["opens_at"] = exc.opens_at.isoformat()
        content["closes_at"] = exc.closes_at.isoformat()
    if exc.status_code >= 500:
        logger.warning(
            "Domain error with server status",
            extra={"code": exc.code, "path": request.url.path},
        )
    return JSONResponse(status_code=exc.status_code, content=content)


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
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
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "message": "An unexpected error occurred. Please contact support with the error_id if the issue persists."
        }
    )


app.include_router(health_router, tags=["Health"])
app.include_router(bookings_router, prefix="/api/v1", tags=["Bookings"])
app.include_router(webhooks_router, prefix="/api/v1", tags=["Webhooks"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
app.include_router(worker_router, prefix="/api/v1", tags=["Worker"])
