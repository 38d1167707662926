"""Course Progress API - application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lms_progress.config import Settings, get_settings
from lms_progress.content_store.factory import build_content_store
from lms_progress.core.context import get_request_id
from lms_progress.core.logging import configure_structlog, get_logger
from lms_progress.core.middleware import RequestContextMiddleware
from lms_progress.health import router as health_router
from lms_progress.progress.dependencies import progress_error_status
from lms_progress.progress.router import router as progress_router
from lms_progress.progress.service import (
    LessonCompletionService,
    ProgressError,
    ProgressService,
)


# Logging must be configured before the first logger is bound
configure_structlog(get_settings())

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the content store and services; close the store on shutdown."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        version=settings.app_version,
        environment=settings.environment,
        content_store=settings.content_store_backend,
    )
    if (
        settings.content_store_backend == "directus"
        and not settings.content_store_configured
    ):
        logger.warning("content_store_token_missing", url=settings.content_store_url)

    store = build_content_store(settings)
    app.state.content_store = store
    app.state.progress_service = ProgressService(store)
    app.state.lesson_completion_service = LessonCompletionService(
        store, max_attempts=settings.completion_max_attempts
    )

    try:
        yield
    finally:
        logger.info("shutting_down_application")
        await store.aclose()


def _error_response(
    request: Request, status_code: int, message: str, **extra: Any
) -> ORJSONResponse:
    """JSON error body shared by every handler."""
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
            **extra,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render progress, HTTP and validation errors as JSON.

    Progress errors keep their message (including the upstream one for store
    failures). Other server errors are reported generically.
    """

    @app.exception_handler(ProgressError)
    async def progress_error_handler(
        request: Request, exc: ProgressError
    ) -> ORJSONResponse:
        status_code = progress_error_status(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "progress_request_failed",
            code=exc.code,
            status_code=status_code,
            detail=exc.message,
            upstream_status=exc.upstream_status,
            path=request.url.path,
        )
        return _error_response(
            request,
            status_code,
            exc.message,
            code=exc.code,
            upstream_status=exc.upstream_status,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
        )
        message = str(exc.detail) if exc.status_code < 500 else "Service unavailable"
        return _error_response(request, exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        errors = exc.errors()
        logger.warning(
            "request_validation_failed", errors=errors, path=request.url.path
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", ())),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in errors
            ],
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        # SECURITY: details are logged, never returned
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
        )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Services are created by the lifespan; tests that skip it set them on
    ``app.state`` directly.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Course Progress API",
        version=settings.app_version,
        description="Ordered course progress and idempotent lesson completion",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )
    # Added last so it wraps everything, CORS included
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(progress_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"message": "Course Progress API", "version": settings.app_version}

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "lms_progress.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
