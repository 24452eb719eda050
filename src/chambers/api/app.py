"""
Chambers FastAPI Application

Main application factory and configuration.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from chambers import __version__
from chambers.config import Settings, settings as default_settings
from chambers.integrations.auth import get_token_verifier
from chambers.logging import configure_logging
from chambers.realtime import VoiceBridge

from .routes import health, realtime, voice

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Lifespan Management
# ══════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = app.state.settings
    logger.info(
        "Starting Chambers API",
        version=__version__,
        environment=settings.app_env,
        realtime_available=settings.realtime_available,
    )

    yield

    logger.info("Shutting down Chambers API")
    await app.state.voice_bridge.shutdown()
    logger.info("Chambers API shutdown complete")


# ══════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════


def create_app(
    settings: Settings | None = None,
    bridge: VoiceBridge | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Chambers API",
        description="Voice companion bridge for the Chambers judicial wellness platform",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.voice_bridge = bridge or VoiceBridge(
        settings, verifier=get_token_verifier()
    )

    # ──────────────────────────────────────────────────────────
    # Middleware
    # ──────────────────────────────────────────────────────────

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing."""
        start = time.perf_counter()

        response = await call_next(request)

        duration = (time.perf_counter() - start) * 1000
        logger.info(
            "Request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(duration, 2),
        )

        return response

    # ──────────────────────────────────────────────────────────
    # Routes
    # ──────────────────────────────────────────────────────────

    app.include_router(
        health.router,
        tags=["Health"],
    )

    app.include_router(
        realtime.router,
        prefix="/api/realtime",
        tags=["Realtime"],
    )

    # WebSocket routes
    app.include_router(
        voice.router,
        prefix="/api",
        tags=["Voice"],
    )

    return app
