"""Structured logging with per-request context using structlog and contextvars."""

from __future__ import annotations

import logging
import uuid

import structlog

_configured = False


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure structlog once for the whole process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        fmt: "json" for machine-readable output, anything else for console output
    """
    global _configured
    if _configured:
        return

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt.lower() == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    _configured = True


def bind_request_context(query: str, request_id: str | None = None) -> str:
    """Bind a request id (and a query preview) to every log line of this run.

    Returns:
        The request id that was bound
    """
    request_id = request_id or uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(request_id=request_id, query_preview=query[:100])
    return request_id


def clear_request_context() -> None:
    """Clear request context after a pipeline run completes."""
    structlog.contextvars.clear_contextvars()
