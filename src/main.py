"""Application entry point: FastAPI app plus the in-process scheduler loop."""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.exception_handlers import setup_exception_handlers
from api.middleware.logging import RequestLoggingMiddleware
from api.middleware.request_id import RequestIDMiddleware
from api.routes.health import router as health_router
from api.v1 import router as v1_router
from api.v1.dependencies import get_notification_scheduler
from core.config import settings
from core.logging import setup_logging
from core.rate_limit import limiter, rate_limit_exceeded_handler
from domain.entities.notification import utcnow
from infrastructure.database.session import engine

setup_logging()
logger = structlog.get_logger()

API_DESCRIPTION = """\
## Notification Scheduling & Adaptive Delivery

Schedules task notifications, bundles near-duplicates, defers delivery out
of quiet hours and picks the channel each user engages with most.

### Authentication
Every endpoint except `/health` expects `Authorization: Bearer <token>`.

### Rate Limits
- Reads: 30 requests/minute
- Writes: 10 requests/minute
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and dependency checks"},
    {"name": "notifications", "description": "Notification creation, listing and acknowledgement"},
    {"name": "delivery", "description": "Delivery configuration, activity pattern and engagement"},
]


async def run_scheduler_forever(interval_seconds: int) -> None:
    """Trigger a scheduler run every ``interval_seconds`` until cancelled.

    Several replicas may run this loop at once; each run only processes
    the rows it managed to claim.
    """
    scheduler = get_notification_scheduler()
    while True:
        try:
            await scheduler.run_once(utcnow())
        except Exception:
            # Claim-phase store errors end the run, never the loop
            logger.exception("scheduler_run_failed")
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    task: asyncio.Task | None = None
    if settings.scheduler_enabled:
        task = asyncio.create_task(run_scheduler_forever(settings.scheduler_interval_seconds))
        logger.info("scheduler_started", interval_seconds=settings.scheduler_interval_seconds)

    yield

    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("scheduler_stopped")
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=API_DESCRIPTION,
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        openapi_tags=OPENAPI_TAGS,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Last added runs first: request id must exist before the logger reads it
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
    )
