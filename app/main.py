"""
Disaster Coordination Hub - FastAPI Application Entry Point

A coordination backend for disaster response: incidents with an append-only
audit trail, geospatial matching of emergency resources, cached external
intelligence feeds and real-time notifications.

DESIGN PRINCIPLES:
- Every incident mutation is audited atomically, or rejected
- Only active resources are offered for first-response matching
- AI output (severity, image verification) is advisory only
- Real-time events are best effort and never block a request
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.settings import Settings, settings as default_settings
from app.routes import admin, disasters, feeds, geocoding, health, realtime, resources, verification
from app.services.coordinator import Coordinator, build_coordinator

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(app_settings: Optional[Settings] = None, coordinator: Optional[Coordinator] = None) -> FastAPI:
    """
    Build the application.

    Without a coordinator one is built at startup from settings (Firestore
    or in-memory store, live or fixture fetchers).
    """
    app_settings = app_settings or (coordinator.settings if coordinator else default_settings)
    configure_logging(app_settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {app_settings.APP_NAME} v{app_settings.APP_VERSION}")
        app.state.coordinator = coordinator or build_coordinator(app_settings)
        sweeper = app.state.coordinator.sweeper
        if app_settings.CACHE_SWEEP_ENABLED:
            sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            app.state.coordinator.event_bus.close()
            logger.info(f"Shutting down {app_settings.APP_NAME}")

    app = FastAPI(
        title=app_settings.APP_NAME,
        version=app_settings.APP_VERSION,
        description="Disaster response coordination: incidents, resources, intelligence feeds and live updates",
        debug=app_settings.DEBUG,
        lifespan=lifespan,
    )

    # Global exception handler to catch ALL exceptions
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch all unhandled exceptions and log them with full traceback."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"Internal server error: {str(exc)}"},
        )

    # Pydantic validation error handler
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    # CORS: explicit origins from settings, never "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in app_settings.CORS_ORIGINS.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(disasters.router)
    app.include_router(resources.router)
    app.include_router(feeds.router)
    app.include_router(verification.router)
    app.include_router(geocoding.router)
    app.include_router(admin.router)
    app.include_router(realtime.router)

    @app.get("/")
    async def root():
        """Root endpoint - API information."""
        return {
            "service": app_settings.APP_NAME,
            "version": app_settings.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/health",
            "realtime": "/ws?topic=global",
        }

    return app


app = create_app()
