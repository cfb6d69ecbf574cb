"""Logging configuration using structlog."""

import logging
import sys
from typing import Optional

import structlog

from schema_guard.config import Settings, get_settings

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ("jsonschema", "referencing", "prometheus_client")


def _use_json(settings: Settings) -> bool:
    log_format = settings.log_format.lower()
    if log_format == "json":
        return True
    if log_format == "console":
        return False
    return settings.is_production


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the engine and its CLI.

    Logs go to stderr so that JSON reports written to stdout stay parseable.
    Events from the validation stages carry the worker thread name, which
    tells the stages apart when they run on the thread pool.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            [structlog.processors.CallsiteParameter.THREAD_NAME]
        ),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if _use_json(settings):
        processors.extend([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()])
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
