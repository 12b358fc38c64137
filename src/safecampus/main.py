"""
SafeCampus FastAPI Application Entry Point

Main application initialization with:
- Lifespan management (service container startup/shutdown)
- CORS configuration
- Error handling and rate limiting middleware
- Router registration
- Prometheus metrics endpoint

This is the production entry point for the SafeCampus backend.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from safecampus import __version__
from safecampus.api.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from safecampus.api.middleware.rate_limiter import RateLimitConfig, RateLimitMiddleware
from safecampus.api.v1.router import api_router
from safecampus.config import Settings, get_settings
from safecampus.config.logging_config import configure_logging, get_logger
from safecampus.infrastructure.metrics import metrics_router, update_system_info
from safecampus.infrastructure.monitoring import init_sentry
from safecampus.services.container import ServiceContainer, create_container

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the service container unless one was injected, and shuts
    it down on exit.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Starting SafeCampus application",
        env=settings.env,
        version=__version__,
    )

    if settings.monitoring.dsn:
        init_sentry(
            dsn=settings.monitoring.dsn,
            environment=settings.env,
            release=f"safecampus@{__version__}",
            sample_rate=settings.monitoring.sample_rate,
            traces_sample_rate=settings.monitoring.traces_sample_rate,
        )
    update_system_info(settings.env, __version__)

    container: Optional[ServiceContainer] = getattr(app.state, "container", None)
    if container is None:
        container = create_container(settings)
        app.state.container = container

    try:
        await container.startup()
        logger.info("Service container ready")
        yield
    finally:
        logger.info("Shutting down SafeCampus application")
        await container.shutdown()
        logger.info("SafeCampus application shutdown complete")


def create_application(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use (defaults to get_settings())
        container: Pre-built services (tests inject in-memory ones)

    Returns:
        Configured FastAPI application
    """
    settings = settings or (container.settings if container else get_settings())
    configure_logging(settings)

    app = FastAPI(
        title="SafeCampus API",
        description="Campus safety backend - SOS alerts, live location and safe walks",
        version=__version__,
        docs_url="/docs" if not settings.is_production() else None,
        redoc_url="/redoc" if not settings.is_production() else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.rate_limit.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            config=RateLimitConfig.from_settings(settings.rate_limit, api_prefix=f"/api/{settings.api_version}"),
        )

    app.add_middleware(ErrorHandlerMiddleware)
    register_exception_handlers(app)

    app.include_router(
        api_router,
        prefix=f"/api/{settings.api_version}",
    )
    app.include_router(metrics_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        """Root endpoint - basic info."""
        return {
            "name": "SafeCampus API",
            "version": __version__,
            "status": "operational",
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "safecampus.main:app",
        host="0.0.0.0",
        port=8000,
        reload=_settings.env == "development",
        log_level=_settings.log_level.lower(),
    )
