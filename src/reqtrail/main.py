"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from reqtrail import __version__
from reqtrail.api import api_router
from reqtrail.core.config import Settings, get_settings
from reqtrail.observability import (
    RequestContextMiddleware,
    TailSampler,
    configure_logging,
    get_logger,
)
from reqtrail.observability.constants import LogEvents
from reqtrail.observability.handlers import register_exception_handlers

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment if omitted.

    Returns:
        The configured application. Its sampler is available as
        ``app.state.sampler``.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager."""
        configure_logging(
            log_level=settings.log_level or "info",
            log_format=settings.log_format,
            development_mode=settings.is_development,
        )
        logger.info(
            LogEvents.APP_STARTED,
            environment=settings.environment,
            sample_rate=settings.log_sample_rate,
        )

        yield

        logger.info(LogEvents.APP_STOPPED)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )

    sampler = TailSampler.from_settings(settings)
    app.state.sampler = sampler

    app.add_middleware(
        RequestContextMiddleware,
        sampler=sampler,
        development=settings.is_development,
        include_prefixes=settings.log_include_prefixes,
        exclude_prefixes=settings.log_exclude_prefixes,
    )
    register_exception_handlers(app, development=settings.is_development)

    app.include_router(api_router, prefix=settings.api_prefix)

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reqtrail.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
