"""Logging for the gateway: structlog events rendered through stdlib handlers.

structlog loggers and plain stdlib loggers (uvicorn, redis) end up on the
same root handler. Both pass through the shared processor chain once, and
rendering happens only in the handler's ``ProcessorFormatter``.

The correlation id of the request being proxied is kept in structlog's
context variables, so every event logged while serving it carries the id,
including cache writes that finish after the response went out.

Usage:
    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("cache_partition_deleted", cache_name="dinutri-v1-static")
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from dinutri_offline.config import Settings

SERVICE_NAME = "dinutri-offline"
CORRELATION_ID_KEY = "correlation_id"

# Chatty third-party loggers; upstream traffic is logged per fetch strategy
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def set_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(**{CORRELATION_ID_KEY: correlation_id})


def get_correlation_id() -> str | None:
    return structlog.contextvars.get_contextvars().get(CORRELATION_ID_KEY)


def clear_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars(CORRELATION_ID_KEY)


def add_service_name(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _shared_processors() -> list[Processor]:
    """Enrichment applied to structlog and stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_processors(settings: Settings) -> list[Processor]:
    """Final steps run by the handler formatter, ending in exactly one renderer."""
    if settings.use_json_logs:
        return [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Route structlog and stdlib logging to one stdout handler.

    Args:
        settings: Application settings (defaults to cached settings)
    """
    if settings is None:
        from dinutri_offline.config import get_settings

        settings = get_settings()

    shared = _shared_processors()
    level = logging.getLevelName(settings.log_level.value)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=_render_processors(settings),
        )
    )

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """Bind values to every event logged inside the ``with`` block.

    Example:
        with log_context(worker_version="v2"):
            logger.info("worker_installing")
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
