"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labor_cost_engine.api.routes import (
    audit_router,
    bulk_router,
    health_router,
    rates_router,
    time_entries_router,
)
from labor_cost_engine.calculators import ResolutionError
from labor_cost_engine.config import get_settings
from labor_cost_engine.database import TransactionTimeoutError, dispose_db, init_db
from labor_cost_engine.services.audit_service import AuditWriteError
from labor_cost_engine.services.collaborators import PermissionDeniedError
from labor_cost_engine.services.correlation import generate_correlation_id
from labor_cost_engine.services.rate_source_service import ConflictError, RateNotFoundError
from labor_cost_engine.services.state_machine import InvalidTransitionError
from labor_cost_engine.services.time_entry_service import (
    TimeEntryNotFoundError,
    TimeEntryRejectedError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def _error(status_code: int, detail: str, code: str, **extra: object) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions to HTTP responses."""

    @app.exception_handler(TimeEntryRejectedError)
    async def rejected_handler(request: Request, exc: TimeEntryRejectedError) -> JSONResponse:
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            str(exc),
            "TIME_ENTRY_REJECTED",
            warnings=[w.to_dict() for w in exc.validation.warnings],
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), "INVALID_INPUT")

    @app.exception_handler(TimeEntryNotFoundError)
    @app.exception_handler(RateNotFoundError)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc), "NOT_FOUND")

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc), "INVALID_TRANSITION")

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(
            status.HTTP_409_CONFLICT,
            str(exc),
            "RATE_CONFLICT",
            conflicting_id=str(exc.conflicting_id),
        )

    @app.exception_handler(PermissionDeniedError)
    async def permission_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, str(exc), "PERMISSION_DENIED")

    @app.exception_handler(ResolutionError)
    @app.exception_handler(AuditWriteError)
    @app.exception_handler(TransactionTimeoutError)
    async def processing_handler(request: Request, exc: Exception) -> JSONResponse:
        reference = getattr(exc, "correlation_id", None) or generate_correlation_id("ref")
        logger.error("Could not process time entry (reference %s): %s", reference, exc)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Could not process time entry",
            "PROCESSING_FAILED",
            reference=reference,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "INTERNAL_ERROR",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title="Labor Cost Engine API",
        description="Labor rate resolution, cost splitting and time entry audit trail",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(time_entries_router, prefix="/api/v1")
    app.include_router(bulk_router, prefix="/api/v1")
    app.include_router(rates_router, prefix="/api/v1")
    app.include_router(audit_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
