"""Per-request identifiers kept in contextvars.

The middleware binds them once per request; the logging processors read them
so every event emitted while serving the request (including the content
store client's) carries the same ids.
"""

from contextvars import ContextVar
from uuid import uuid4


_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)
_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_ALL = {
    "request_id": _request_id,
    "trace_id": _trace_id,
    "correlation_id": _correlation_id,
}


def bind_request_context(
    request_id: str | None = None,
    trace_id: str | None = None,
    correlation_id: str | None = None,
) -> str:
    """Bind the ids of the current request.

    Returns:
        The request id, generated when the caller did not send one.
    """
    request_id = request_id or str(uuid4())
    _request_id.set(request_id)
    _trace_id.set(trace_id)
    _correlation_id.set(correlation_id)
    return request_id


def get_request_id() -> str | None:
    return _request_id.get()


def get_context() -> dict[str, str]:
    """Bound ids, skipping the ones that are not set."""
    return {name: var.get() for name, var in _ALL.items() if var.get()}


def clear_context() -> None:
    for var in _ALL.values():
        var.set(None)
