"""Structured logging setup."""

import logging
import os
import sys

import structlog


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog for the whole application.

    Args:
        level: Log level name, defaults to LOG_LEVEL or INFO
        json_logs: Emit JSON lines instead of console output, defaults to LOG_JSON
    """
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if json_logs is None:
        json_logs = os.environ.get("LOG_JSON", "").lower() in ("1", "true", "yes")

    log_level = logging.getLevelName(level)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    # Third party libraries (httpx, uvicorn) log through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
