"""
MarketSync Backend — FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routers.
       The lifespan builds the service container (store + managers) unless
       one was injected, and closes it on shutdown.
Who:   uvicorn (`uvicorn marketsync.main:app`) and the test suite.

Application Architecture:
    ┌───────────────────────────────────────────────────────┐
    │                     FastAPI App                       │
    │                                                       │
    │  Middleware:   Request ID → Access Log → GZip → CORS  │
    │                                                       │
    │  Routes:       /health   /api/users/*/follows         │
    │                /api/feed/*   /api/conversations/*     │
    │                /api/services|posts|bookings           │
    │                                                       │
    │  app.state.container → ServiceContainer               │
    │      store ─┬─ identity ─┬─ follows                   │
    │             │            ├─ feed                      │
    │             │            ├─ conversations             │
    │             │            └─ registrar                 │
    └───────────────────────────────────────────────────────┘

Error mapping:
    ValidationError → 400     PermissionDeniedError → 403
    NotFoundError   → 404     ConflictError         → 409
    TransientStoreError → 503 anything else         → 500
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from marketsync import __version__
from marketsync.config import settings
from marketsync.dependencies import ServiceContainer, build_container
from marketsync.exceptions import (
    ConflictError,
    MarketSyncError,
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
    ValidationError,
)
from marketsync.middleware.logging import RequestLoggingMiddleware
from marketsync.middleware.request_id import RequestIDMiddleware, request_id_var
from marketsync.routes import conversations, feed, follows, health, registrar

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════


def setup_logging() -> None:
    """
    Configure the root logger from settings.

    Format: 2024-01-15T12:00:00 [INFO] marketsync.services.follow_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: configure logging, build the container if none was injected.
    Shutdown: close the container we built (streams first, then the store).
    """
    setup_logging()
    logger.info("=" * 60)
    logger.info("MarketSync Backend %s starting up...", __version__)

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        app.state.container = await build_container(settings)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("MarketSync Backend shutting down...")
    if owns_container:
        await app.state.container.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def _error(status_code: int, error: str, message: str, details: Optional[dict] = None) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the MarketSyncError hierarchy onto HTTP responses.

    4xx bodies carry the exception context as `details`; 5xx bodies never
    do (the context is logged server-side instead).
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Permission denied: %s", request_id_var.get(""), exc.message)
        return _error(403, "permission_denied", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error(404, "not_found", exc.message, {"resource": exc.resource})

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return _error(409, "conflict", exc.message, exc.context)

    @app.exception_handler(TransientStoreError)
    async def handle_store_error(request: Request, exc: TransientStoreError):
        logger.error(
            "[%s] Store error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return _error(503, "store_unavailable", exc.message)

    @app.exception_handler(MarketSyncError)
    async def handle_marketsync_error(request: Request, exc: MarketSyncError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error(500, "server_error", "An internal error occurred. Please try again later.")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return _error(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built service container. Tests pass one around a
                   seeded MemoryDocumentStore; its lifetime then stays with
                   the caller. When omitted, the lifespan builds one from
                   settings.
    """
    app = FastAPI(
        title="MarketSync API",
        description=(
            "Data-synchronization layer for a beauty and personal-care services "
            "marketplace: follows, catalog and personalized feeds, consumer/provider "
            "conversations and provider listings."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(follows.router)
    app.include_router(feed.router)
    app.include_router(conversations.router)
    app.include_router(registrar.router)

    return app


app = create_app()
