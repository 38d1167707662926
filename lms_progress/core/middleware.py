"""Request middleware: request ids and access logging."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from lms_progress.core.context import bind_request_context, clear_context


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


def trace_id_from_headers(headers: Headers) -> str | None:
    """Trace id from ``X-Trace-ID``, ``X-B3-TraceId`` or W3C ``traceparent``.

    ``traceparent`` is ``{version}-{trace-id}-{parent-id}-{flags}``.
    """
    trace_id = headers.get("X-Trace-ID") or headers.get("X-B3-TraceId")
    if trace_id:
        return trace_id

    parts = headers.get("traceparent", "").split("-")
    return parts[1] if len(parts) >= 2 and parts[1] else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request ids for logging and logs each request with its timing.

    The request id is taken from ``X-Request-ID`` (or generated) and echoed on
    the response. Paths under ``exclude_paths`` (health probes) are served but
    not logged.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        request_id = bind_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            trace_id=trace_id_from_headers(request.headers),
            correlation_id=request.headers.get(CORRELATION_ID_HEADER),
        )
        request.state.request_id = request_id

        # Bound explicitly: the context is cleared before the final log line
        log = logger.bind(
            request_id=request_id, method=request.method, path=request.url.path
        )
        should_log = self.log_requests and not request.url.path.startswith(
            self.exclude_paths
        )
        if should_log:
            log.info("request_started", query=str(request.query_params) or None)

        try:
            response = await call_next(request)
        except Exception as e:
            log.exception(
                "request_failed",
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        finally:
            clear_context()

        if should_log:
            (log.warning if response.status_code >= 400 else log.info)(
                "request_completed",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(started),
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
