"""Structured logging configuration with structlog."""

import logging

import structlog

from gamehunt.config import Settings

# Chatty third-party loggers pinned to WARNING regardless of log_level
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def _add_service(
    _logger: object, _method: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("service", "gamehunt-progression")
    return event_dict


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output.

    Stdlib loggers used by the service modules share the root level set
    here, so ``GAMEHUNT_LOG_LEVEL`` governs both.
    """
    if settings.log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
