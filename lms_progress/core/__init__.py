# Request context, logging and middleware shared by every router
from lms_progress.core.context import (
    bind_request_context,
    clear_context,
    get_context,
    get_request_id,
)
from lms_progress.core.logging import configure_structlog, get_logger
from lms_progress.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "bind_request_context",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
]
