"""
FastAPI application factory.

* Registers routes for jobs, trips, notifications and admin.
* Starts / stops the notification worker via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, jobs, notify, trips
from src.config import settings
from src.infrastructure import redis_client
from src.workers import notifier as _notifier

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the notification worker on startup; drain it on shutdown."""
    await _notifier.start_notifier()
    yield
    await _notifier.stop_notifier()
    await redis_client.close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{settings.app_name} Dispatch API",
        description=(
            "Dispatchers post ride jobs, drivers claim them and run timed "
            "trips.  Claims are first-write-wins, fares are per minute, and "
            "drivers are texted when a new job appears."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(jobs.router, prefix="/api/v1")
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")
    app.include_router(notify.router, prefix="/api")

    return app
