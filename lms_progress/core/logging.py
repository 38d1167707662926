"""Structlog configuration.

Events are rendered by stdlib handlers through ``ProcessorFormatter``:

- stdout: colored console output, or JSON when ``LOG_FORMAT=json``
- ``<app>.log`` / ``<app>.error.log``: rotating JSON files (``LOG_FILE_ENABLED``)

Every event gets the request ids bound by the middleware, and values under
credential-like keys (the content store token, authorization headers) are
masked before rendering.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

from lms_progress.core.context import get_context


if TYPE_CHECKING:
    from lms_progress.config.settings import Settings


SENSITIVE_KEYS = ("token", "authorization", "secret", "password", "api_key", "cookie")

NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error", "httpx", "httpcore")


def add_request_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key, value in get_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def _mask(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask(str(k), v) for k, v in value.items()}
    if not isinstance(value, str) or not any(s in key.lower() for s in SENSITIVE_KEYS):
        return value
    # Keep a short tail so different tokens can still be told apart
    return "***" if len(value) <= 8 else f"***{value[-4:]}"


def mask_credentials(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    return {key: _mask(key, value) for key, value in event_dict.items()}


def _shared_processors(settings: "Settings") -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_context,
        mask_credentials,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )
    return processors


def _rotating_json_handler(
    path: Path, level: str, settings: "Settings", pre_chain: list[Processor]
) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def configure_structlog(
    settings: "Settings",
    log_dir: Path | str | None = None,
) -> None:
    """Configure structlog and the root logger from settings.

    Args:
        settings: Application settings
        log_dir: Directory for log files (defaults to ``settings.log_dir``)
    """
    level = settings.log_level.upper()
    shared = _shared_processors(settings)

    renderer: Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer, foreign_pre_chain=shared
        )
    )
    handlers: list[logging.Handler] = [console]

    if settings.log_file_enabled:
        directory = Path(log_dir or settings.log_dir)
        handlers += [
            _rotating_json_handler(
                directory / f"{settings.app_name}.log", level, settings, shared
            ),
            _rotating_json_handler(
                directory / f"{settings.app_name}.error.log", "ERROR", settings, shared
            ),
        ]

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        root.addHandler(handler)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
