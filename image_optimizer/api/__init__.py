"""
API module for the image optimizer.
"""
import asyncio
import logging
import contextlib
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from image_optimizer import __version__
from image_optimizer.config import Settings, get_settings
from image_optimizer.core.gate import build_header_gate, build_upload_gate
from image_optimizer.core.rate_limit import FixedWindowRateLimiter
from image_optimizer.core.response import ResponseStrategy
from image_optimizer.errors import setup_exception_handlers
from image_optimizer.utils.file_handling import TemporaryArtifactStore
from image_optimizer.api.health import router as health_router
from image_optimizer.api.middleware import setup_middlewares
from image_optimizer.api.optimize import router as optimize_router

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (read from the environment if omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Image Optimizer API",
        description="""
        Re-encodes uploaded images to WebP, AVIF, JPEG or PNG, scaling them
        down to a maximum width, and reports the size savings.

        Results are returned inline or stored temporarily behind a URL.
        """,
        version=__version__
    )

    store = TemporaryArtifactStore(
        settings.TEMP_DIR,
        url_prefix=settings.TEMP_URL_PREFIX,
        ttl_seconds=settings.TEMP_FILE_TTL_SECONDS
    )
    store.ensure_directory()
    limiter = FixedWindowRateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS
    )

    app.state.settings = settings
    app.state.store = store
    app.state.limiter = limiter
    app.state.header_gate = build_header_gate(settings, limiter)
    app.state.upload_gate = build_upload_gate(settings)
    app.state.responder = ResponseStrategy(store)
    app.state.sweeper = None

    setup_middlewares(app, settings)
    setup_exception_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(optimize_router)

    # Serve url-mode artifacts
    app.mount(
        settings.TEMP_URL_PREFIX,
        StaticFiles(directory=store.directory, check_dir=False),
        name="temp"
    )

    @app.on_event("startup")
    async def startup():
        """Prepare the artifact directory and start the expiry sweeper."""
        store.ensure_directory()
        if settings.uses_default_api_key:
            logger.warning("API_KEY is set to the default value; change it before exposing the service")
        if store.ttl_seconds > 0:
            app.state.sweeper = asyncio.create_task(
                store.run_sweeper(settings.TEMP_SWEEP_INTERVAL_SECONDS)
            )
        logger.info(f"Serving artifacts from {store.directory} at {settings.TEMP_URL_PREFIX}")

    @app.on_event("shutdown")
    async def shutdown():
        """Stop the expiry sweeper."""
        sweeper = app.state.sweeper
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            app.state.sweeper = None

    return app


__all__ = ['create_app']
