"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import admin_router, disclosure_router, healthz_router, metrics_router
from .config import Settings, get_settings
from .core.exceptions import SiteGateException
from .core.metrics import MetricsCollector
from .core.services import ServiceContainer, build_services


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # aiohttp access noise
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings, services: Optional[ServiceContainer] = None) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Builds the service container unless one was supplied, and starts
        and stops the backend session and connectivity monitor.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting SiteGate service", version=app.version)

        container = services
        if container is None:
            container = build_services(settings, metrics=MetricsCollector())
        app.state.services = container

        await container.start()
        try:
            logger.info("SiteGate service started successfully")
            yield
        finally:
            logger.info("Shutting down SiteGate service")
            await container.stop()
            logger.info("SiteGate service shutdown complete")

    return lifespan


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Passing a prebuilt container skips building one from settings; tests
    use this to inject fake backends and stores.
    """
    settings = services.settings if services is not None else get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="SiteGate",
        description="Rate-limited, audited access to sensitive site records",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings, services),
    )

    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        container = getattr(request.app.state, "services", None)
        if container is not None and container.metrics is not None:
            route = request.scope.get("route")
            container.metrics.record_request(
                method=request.method,
                endpoint=getattr(route, "path", request.url.path),
                status_code=response.status_code,
                duration_seconds=time.perf_counter() - start,
            )
        return response

    @app.exception_handler(SiteGateException)
    async def sitegate_exception_handler(request: Request, exc: SiteGateException) -> JSONResponse:
        """Handle custom SiteGate exceptions."""
        logger = structlog.get_logger(__name__)
        logger.error(
            "SiteGate exception occurred",
            error=str(exc),
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )

        headers = {}

        # Add Retry-After header for rate limit errors
        if exc.status_code == 429 and exc.details.get("retry_after") is not None:
            headers["Retry-After"] = str(exc.details["retry_after"])

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": str(exc),
                "details": exc.details,
            },
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger = structlog.get_logger(__name__)
        logger.error(
            "Unexpected exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    app.include_router(disclosure_router, prefix="/v1", tags=["disclosures"])
    app.include_router(admin_router, tags=["admin"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "SiteGate",
            "version": app.version,
            "description": app.description,
            "docs": "/docs",
        }

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sitegate.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
