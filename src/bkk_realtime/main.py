"""FastAPI application entry point."""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bkk_realtime.config import get_settings
from bkk_realtime.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from bkk_realtime.routers.bkk import router as bkk_router
from bkk_realtime.routers.bkk import services_dependency
from bkk_realtime.routers.verification import router as verification_router
from bkk_realtime.services.container import get_services, reset_services

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    logger.info("Starting BKK Realtime Verification API")

    app.state.bkk = get_services()

    yield

    logger.info("Shutting down BKK Realtime Verification API")
    reset_services()
    app.state.bkk = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Real-time BKK (Budapest) alerts and vehicle positions, and "
            "verification records for absence-excuse submissions"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_request_context()
        return response

    # Include routers
    app.include_router(bkk_router)
    app.include_router(verification_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Health check endpoint returning application and cache status."""
        settings = get_settings()
        services = services_dependency(request)
        feeds = services.coordinator.status()
        snapshot = services.manager.status()

        issues: list[str] = []
        if not services.reference.is_loaded:
            issues.append("Reference tables are not loaded")
        if snapshot["initialized"] and not snapshot["vehicles"]:
            issues.append("Snapshot has no vehicle positions")

        return {
            "service": settings.app_name,
            "status": "degraded" if issues else "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "feeds": feeds,
                "snapshot": {
                    "initialized": snapshot["initialized"],
                    "updatedAt": snapshot["updated_at"],
                    "loading": snapshot["loading"],
                },
                "reference": {
                    "loaded": services.reference.is_loaded,
                    "routes": services.reference.route_count,
                    "stops": services.reference.stop_count,
                },
            },
            "issues": issues,
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
