"""
Structured logging configuration using structlog.

JSON lines in production, coloured console output in development.

Pipeline components log through plain ``logging.getLogger(__name__)``;
services, the API and the CLI log through structlog. Both paths end in
the same ``ProcessorFormatter``, so the ``run_id``/``post_id`` bound by
the ingest service shows up on every line emitted while a post is in
flight, whichever logger produced it.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "asyncpg", "openai", "anthropic")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Override for the configured log level.

    Usage:
        setup_logging()
        bind_context(run_id="run_42")
        structlog.get_logger(__name__).info("Batch started", posts=25)
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
        final_processors: list[Processor] = [structlog.processors.format_exc_info, renderer]
    else:
        final_processors = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta] + final_processors,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind key/value pairs (e.g. run_id, post_id) to all subsequent log lines."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
