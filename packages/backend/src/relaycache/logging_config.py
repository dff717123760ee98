"""structlog configuration.

Learn: Every module does `logger = structlog.get_logger()` and logs
dotted event names with key/value context (`catalog.cache_miss`,
`gateway.session_attached`). This module decides how those events are
rendered: a colored console renderer for development, JSON lines for
log aggregators. Request IDs bound by RequestIdMiddleware are merged
in via structlog's contextvars processor.
"""

import logging

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    The stdlib logger is configured too so uvicorn and SQLAlchemy output
    honors the same level.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(message)s")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )
