"""FastAPI application entry point.

This module initializes the FastAPI application with CORS, error
handling, rate limiting, route registration and the background
reaper loop.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from ephemap import __version__
from ephemap.api.deps import get_storage
from ephemap.api.endpoints import changes, comments, health, photos, reaper, zones
from ephemap.core.config import settings
from ephemap.core.logging import setup_logging
from ephemap.middleware.error_handler import ErrorHandlerMiddleware, setup_exception_handlers
from ephemap.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from ephemap.services.database import AsyncSessionLocal, init_models
from ephemap.services.reaper import Reaper

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Creates tables outside production (alembic owns the schema there)
    and runs the reaper on a fixed interval when enabled.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    # Startup
    logger.info("Starting Ephemap API...")
    logger.info(f"Environment: {settings.APP_ENV}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if settings.APP_ENV != "production":
        await init_models()

    stop = asyncio.Event()
    reaper_task = None
    if settings.REAPER_ENABLED:
        sweeper = Reaper(AsyncSessionLocal, get_storage())
        reaper_task = asyncio.create_task(
            sweeper.run_forever(settings.REAPER_INTERVAL_SECONDS, stop=stop)
        )

    yield

    # Shutdown
    logger.info("Shutting down Ephemap API...")
    if reaper_task is not None:
        stop.set()
        try:
            await asyncio.wait_for(reaper_task, timeout=10)
        except asyncio.TimeoutError:
            reaper_task.cancel()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Ephemap API",
        description=(
            "Location-based ephemeral photo map. Photos live forever in "
            "quiet zones and compete for time in crowded ones."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handling middleware
    app.add_middleware(ErrorHandlerMiddleware)

    # Setup exception handlers
    setup_exception_handlers(app)

    # Rate limiting on interaction endpoints
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Register routers
    app.include_router(health.router)
    for module in (photos, comments, zones, reaper, changes):
        app.include_router(module.router, prefix=settings.API_PREFIX)

    app.mount(
        settings.STORAGE_PUBLIC_URL,
        StaticFiles(directory=settings.STORAGE_PATH, check_dir=False),
        name="storage",
    )

    return app


# Create the application instance
app = create_application()
