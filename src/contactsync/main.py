"""
FastAPI application entry point.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contactsync.config import get_settings
from contactsync.contacts.router import router as contacts_router
from contactsync.jobs.runner import BackgroundTaskRunner
from contactsync.jobs.tracker import JobStatusTracker
from contactsync.shared.database import get_database_manager
from contactsync.shared.exceptions import (
    AppError,
    ExternalFetchError,
    NotFoundError,
    PersistenceError,
)
from contactsync.shared.logging import correlation_id_var, get_logger, setup_logging

logger = get_logger(__name__)

# Most specific first; anything else derived from AppError is a client error.
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ExternalFetchError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_for_error(exc: AppError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def _job_cleanup_loop(tracker: JobStatusTracker) -> None:
    """Periodically drop jobs that have not been touched for the retention period."""
    settings = get_settings()
    logger.info(
        "Job cleanup loop starting",
        extra={
            "interval_seconds": settings.job_cleanup_interval_seconds,
            "retention_hours": settings.job_retention_hours,
        },
    )
    while True:
        await asyncio.sleep(settings.job_cleanup_interval_seconds)
        try:
            tracker.cleanup_old_jobs(max_age_hours=settings.job_retention_hours)
        except Exception:
            logger.exception("Job cleanup tick failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()
    db_manager = get_database_manager()

    logger.info("Application starting", extra={"env": settings.app_env})

    if settings.database_auto_create:
        await db_manager.create_all()
        logger.info("Database tables ensured")

    cleanup_task: asyncio.Task[None] | None = None
    if settings.job_cleanup_enabled:
        cleanup_task = asyncio.create_task(_job_cleanup_loop(app.state.job_tracker))
        app.state.cleanup_task = cleanup_task

    yield

    logger.info("Shutting down application")

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("Job cleanup loop stopped")

    await app.state.task_runner.shutdown()
    await db_manager.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="contactsync API",
        description="Contact management with CSV import/export and CRM sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.job_tracker = JobStatusTracker()
    app.state.task_runner = BackgroundTaskRunner()

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        code = status_for_error(exc)
        logger.warning(
            "Request failed",
            extra={
                "path": request.url.path,
                "status_code": code,
                "error_type": type(exc).__name__,
                "error": exc.message,
            },
        )
        return JSONResponse(status_code=code, content={"detail": str(exc)})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    @app.middleware("http")
    async def correlation_id_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers["X-Request-ID"] = correlation_id
        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(contacts_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
