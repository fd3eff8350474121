"""
CoffeeTime AI Backend: FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn coffeetime.main:app).
When:  Once at server startup; the returned app handles all subsequent requests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:                                                 │
    │  ┌────────────────────┐ ┌───────────────────┐ ┌────────┐ │
    │  │ /api/ai/*          │ │ /api/users/{id}/  │ │/health │ │
    │  │ analyze, parse,    │ │   ai-settings     │ │        │ │
    │  │ generate, models   │ │                   │ │        │ │
    │  └────────────────────┘ └───────────────────┘ └────────┘ │
    │                                                          │
    │  Exception Handlers:                                     │
    │    Validation/Configuration → 400                        │
    │    FallbackKeyMissing, Provider, Extraction, DB → 500    │
    └──────────────────────────────────────────────────────────┘

Every error body is {"error": <message>, "request_id": <id>}.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from coffeetime import __version__
from coffeetime.config import settings
from coffeetime.database import dispose_engine
from coffeetime.exceptions import (
    CoffeeTimeError,
    ConfigurationError,
    DatabaseError,
    FallbackKeyMissingError,
    ProviderError,
    ValidationError,
)
from coffeetime.middleware.logging import RequestLoggingMiddleware
from coffeetime.middleware.request_id import RequestIDMiddleware, request_id_var
from coffeetime.routes import ai, health
from coffeetime.routes import settings as settings_routes

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════


def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: 2025-01-15T12:00:00 [INFO] coffeetime.services.llm_base: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # httpx logs every request URL at INFO, and Gemini URLs carry the API key
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("CoffeeTime AI backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: callers that send their own aiConfig still work
        logger.error("Configuration error: %s", str(e))

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("CoffeeTime AI backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request_id_var.get("")


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "request_id": _request_id(request)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP status codes.

    Handler resolution follows the exception's MRO, so the most specific
    registered class wins:

        ValidationError          → 400 (client can fix the input)
        RequestValidationError   → 400 (body failed schema validation)
        FallbackKeyMissingError  → 500 (server is missing its fallback key)
        ConfigurationError       → 400 (user can fix it in Settings)
        ProviderError            → 500
        DatabaseError            → 500 (generic message; details logged)
        CoffeeTimeError (base)   → 500 (empty response, extraction, no image)
        Exception (fallback)     → 500 (generic message; traceback logged)

    Context dicts are logged server-side and never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return _error_response(request, 400, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        else:
            message = "Invalid request"
        logger.warning("[%s] Request validation error: %s", _request_id(request), message)
        return _error_response(request, 400, message)

    @app.exception_handler(FallbackKeyMissingError)
    async def handle_fallback_key_missing(request: Request, exc: FallbackKeyMissingError):
        logger.error("[%s] No fallback API key configured", _request_id(request))
        return _error_response(request, 500, exc.message)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.warning(
            "[%s] Configuration error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return _error_response(request, 400, exc.message)

    @app.exception_handler(ProviderError)
    async def handle_provider_error(request: Request, exc: ProviderError):
        logger.error(
            "[%s] Provider error (%s, HTTP %s): %s",
            _request_id(request),
            exc.provider,
            exc.status_code,
            exc.message,
        )
        return _error_response(request, 500, exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s", _request_id(request), exc.message, exc.context
        )
        return _error_response(request, 500, "An internal error occurred. Please try again later.")

    @app.exception_handler(CoffeeTimeError)
    async def handle_application_error(request: Request, exc: CoffeeTimeError):
        logger.error(
            "[%s] %s: %s | Context: %s",
            _request_id(request),
            type(exc).__name__,
            exc.message,
            exc.context,
        )
        return _error_response(request, 500, exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", _request_id(request), str(exc), exc_info=True)
        return _error_response(
            request, 500, "An unexpected error occurred. Please try again or contact support."
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════


def create_app() -> FastAPI:
    app = FastAPI(
        title="CoffeeTime AI API",
        description=(
            "Provider-agnostic AI backend for CoffeeTime: product photo analysis, "
            "voice brew parsing and product image generation across Gemini, "
            "Claude and OpenAI."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    # Generated images come back as large base64 JSON bodies
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(ai.router)
    app.include_router(settings_routes.router)
    app.include_router(health.router)

    return app


app = create_app()
