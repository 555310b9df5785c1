"""
StudyCare Backend — FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (`uvicorn studycare.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain (outermost first):                         │
    │  Metrics → Rate Limit → Request ID → Logging → GZip → CORS   │
    │                                                              │
    │  Routes:                                                     │
    │  /api/auth  /api/chat  /api/image  /api/voice  /api/notes    │
    │  /api/symptom  /api/teacher  /api/student  /api/pods         │
    │  /api/caregiver  /health  /metrics                           │
    │                                                              │
    │  Exception Handlers:                                         │
    │  StudyCareError → its status │ body validation → 400 │ * → 500│
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging (request-id aware format)
    2. Validate configuration (logged, not fatal: /health still answers)
    3. Start the cache cleanup loop

    Shutdown:
    1. Cancel the cache cleanup loop
    2. Dispose database engine (close all connections)

App-scoped services:
    app.state.cache (TTLCache) and app.state.metrics (MetricsCollector) are
    created per app instance in create_app(); routes reach them through the
    get_cache / get_metrics dependencies.
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from studycare import __version__
from studycare.config import settings
from studycare.database import dispose_engine
from studycare.exceptions import StudyCareError
from studycare.middleware.logging import RequestLoggingMiddleware
from studycare.middleware.metrics import MetricsMiddleware
from studycare.middleware.rate_limit import RateLimitMiddleware
from studycare.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from studycare.routes import (
    auth,
    caregiver,
    chat,
    health,
    image,
    notes,
    pods,
    student,
    symptom,
    teacher,
    voice,
)
from studycare.services.cache import TTLCache
from studycare.services.metrics import MetricsCollector

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Structured Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    The request id comes from RequestIDLogFilter, attached to the handler so
    every record (including third-party ones) has the attribute.
    """
    handler = logging.StreamHandler(sys.stdout)  # Docker captures stdout
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,  # Override any existing logging config
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("StudyCare Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")
        # Keep serving: health checks report the degraded state

    cleanup_task = asyncio.create_task(
        app.state.cache.run_cleanup_loop(settings.cache_cleanup_interval)
    )

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("StudyCare Backend shutting down...")
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task

    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_response(status_code: int, message: str, code: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"message": message, "code": code}},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        StudyCareError (any subclass) → exc.status_code, exc.code
        RequestValidationError        → 400 validation_error
        Exception (fallback)          → 500 internal_error

    Security: handlers NEVER expose internal details (stack traces, SQL,
    provider responses). `exc.context` is logged server-side only.
    """

    @app.exception_handler(StudyCareError)
    async def handle_studycare_error(request: Request, exc: StudyCareError):
        rid = request_id_var.get("")
        request.app.state.metrics.record_error(type(exc).__name__)

        if exc.status_code >= 500:
            logger.error(
                "[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context
            )
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        headers = {}
        retry_after = getattr(exc, "retry_after", None) or getattr(exc, "recovery_time", None)
        if retry_after and exc.status_code in (429, 503):
            headers["Retry-After"] = str(retry_after)

        return error_response(exc.status_code, exc.message, exc.code, headers or None)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Body/query/path validation failures: report the first problem."""
        request.app.state.metrics.record_error("RequestValidationError")
        errors = exc.errors()
        message = "Validation failed"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), message)
        return error_response(400, message, "validation_error")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500 body, full stack trace in the server log only."""
        rid = request_id_var.get("")
        request.app.state.metrics.record_error(type(exc).__name__)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return error_response(
            500,
            "An unexpected error occurred. Please try again or contact support.",
            "internal_error",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns: Fully configured FastAPI instance with its own cache and
             metrics collector.
    """
    app = FastAPI(
        title="StudyCare API",
        description=(
            "AI study companion: tutoring chat, image and voice help, notes, "
            "classrooms, study pods and caregiver monitoring."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.cache = TTLCache(default_ttl=settings.cache_default_ttl)
    app.state.metrics = MetricsCollector(sample_size=settings.metrics_sample_size)

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added = outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    # Don't compress small responses (overhead > savings)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(MetricsMiddleware, collector=app.state.metrics)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(chat.router)
    app.include_router(image.router)
    app.include_router(voice.router)
    app.include_router(notes.router)
    app.include_router(symptom.router)
    app.include_router(teacher.router)
    app.include_router(student.router)
    app.include_router(pods.router)
    app.include_router(caregiver.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `studycare.main:app` to be importable
app = create_app()
