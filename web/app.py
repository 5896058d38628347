"""FastAPI application exposing the session bridge over HTTP polling."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from sessionbridge import __version__
from sessionbridge.core.config.settings import BridgeSettings, get_settings
from sessionbridge.core.exceptions import SessionBridgeError
from sessionbridge.middleware import CorrelationMiddleware
from sessionbridge.services.bridge_service import BridgeService
from web.dependencies import limiter
from web.exception_handlers import (
    bridge_exception_handler,
    http_exception_handler,
    rate_limit_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from web.middleware import SecurityHeadersMiddleware
from web.routes import auth_router, health_router, schedule_router, session_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown.

    Handles:
    - Background timers (session sweep, code sweep, scheduler tick) on startup
    - Timer stop and bounded release of every session on shutdown
    """
    service: BridgeService = app.state.service

    # Startup
    logger.info("FastAPI application starting up...")
    service.start()

    yield

    # Shutdown
    logger.info("FastAPI application shutting down...")
    timeout = service.settings.shutdown_timeout_seconds
    try:
        # Sessions get the configured timeout; allow a little extra for the timers
        await asyncio.wait_for(service.shutdown(timeout=timeout), timeout=timeout + 5)
    except asyncio.TimeoutError:
        logger.error(f"Bridge service shutdown timed out after {timeout + 5}s")
    except Exception as e:
        logger.error(f"Error shutting down bridge service: {e}")


def create_app(
    service: Optional[BridgeService] = None,
    settings: Optional[BridgeSettings] = None,
) -> FastAPI:
    """
    Factory function to create FastAPI application instance.

    Args:
        service: Pre-built service (tests inject one with a fake driver factory)
        settings: Settings used when ``service`` is not given

    Returns:
        Configured FastAPI application instance
    """
    settings = service.settings if service is not None else (settings or get_settings())
    service = service or BridgeService(settings=settings)

    app = FastAPI(
        title="SessionBridge API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development() else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development() else None,
        description=(
            "Bridges asynchronous browser automation sessions with clients that "
            "can only poll over HTTP: login, pending input, out-of-band codes "
            "and randomized daily operations."
        ),
        openapi_tags=[
            {"name": "auth", "description": "Login, pending input and code notifications"},
            {"name": "session", "description": "Session statistics and info"},
            {"name": "schedule", "description": "Recurring daily operations"},
            {"name": "health", "description": "Service health and monitoring"},
        ],
    )
    app.state.service = service

    # Rate limiting
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)

    # Exception handlers
    app.add_exception_handler(SessionBridgeError, bridge_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Middleware (last added runs first)
    app.add_middleware(SecurityHeadersMiddleware, strict_transport=settings.is_production())
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "X-Request-ID"],
    )

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(schedule_router)
    app.include_router(health_router)

    return app
