"""
BidBoard Backend - FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn bidboard.main:app`) and the test suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:      /api/projects/{id}/applications            │
    │               /api/applications[/...]    /health         │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400  Auth→401  Forbidden→403  NotFound→404  │
    │   StateTransition/Conflict/Duplicate/NotOpen→409         │
    │   Persistence→500  Timeout→504                           │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check
    Shutdown: drain in-flight notifications, close notifier, dispose engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from bidboard import __version__
from bidboard.config import settings
from bidboard.database import dispose_engine
from bidboard.exceptions import (
    AuthenticationError,
    BidBoardError,
    ConflictAssignmentError,
    DuplicateApplicationError,
    ForbiddenError,
    InvalidStateTransitionError,
    NotFoundError,
    OperationTimeoutError,
    PersistenceError,
    ProjectNotOpenError,
    ValidationError,
)
from bidboard.middleware.logging import RequestLoggingMiddleware
from bidboard.middleware.request_id import RequestIDMiddleware, request_id_var
from bidboard.routes import applications, health
from bidboard.services.notifier import notification_dispatcher

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """Configure the root logger once; every module logs through getLogger(__name__)."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("BidBoard Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports the problem and reads still work
        logger.error("Configuration error: %s", e)

    logger.info("Notifier backend: %s", settings.notifier_backend)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("BidBoard Backend shutting down...")
    await notification_dispatcher.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

# (status code, error code) per domain exception
ERROR_STATUS: Dict[Type[BidBoardError], tuple] = {
    ValidationError: (400, "validation_error"),
    AuthenticationError: (401, "unauthenticated"),
    ForbiddenError: (403, "forbidden"),
    NotFoundError: (404, "not_found"),
    InvalidStateTransitionError: (409, "invalid_state_transition"),
    ConflictAssignmentError: (409, "conflict_assignment"),
    DuplicateApplicationError: (409, "duplicate_application"),
    ProjectNotOpenError: (409, "project_not_open"),
    OperationTimeoutError: (504, "operation_timeout"),
}


def _error_body(code: str, message: str, details=None) -> dict:
    return {
        "error": code,
        "message": message,
        "details": details,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception taxonomy to HTTP responses.

    Client-side outcomes (4xx) return the exception's message and context.
    PersistenceError and unexpected exceptions return a generic message; the
    details go to the log only.
    """

    async def handle_domain_error(request: Request, exc: BidBoardError):
        status_code, code = ERROR_STATUS[type(exc)]
        level = logging.ERROR if status_code >= 500 else logging.INFO
        logger.log(level, "[%s] %s: %s", request_id_var.get(""), code, exc.message)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(code, exc.message, exc.context or None),
        )

    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, handle_domain_error)

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        rid = request_id_var.get("")
        logger.error("[%s] Persistence error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message),
        )

    @app.exception_handler(BidBoardError)
    async def handle_bidboard_error(request: Request, exc: BidBoardError):
        rid = request_id_var.get("")
        logger.error("[%s] Unmapped error %s: %s", rid, type(exc).__name__, exc.message)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="BidBoard API",
        description=(
            "Application lifecycle engine for a freelance marketplace: submit bids, "
            "review them, accept exactly one per project."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Executed in reverse order of addition: RequestID runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(applications.router)
    app.include_router(health.router)

    return app


app = create_app()
