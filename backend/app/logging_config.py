"""Structured logging configuration using structlog.

Development gets a colored console renderer, production gets one JSON object
per line. Request-scoped values (trace_id, user_id) are carried through
contextvars so service modules can keep using ``logging.getLogger(__name__)``
and still have them attached.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "celery.worker.strategy": logging.WARNING,
}


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    app_env: str = "development",
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Root logging level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Force JSON output regardless of environment
        app_env: Application environment; production always logs JSON
    """
    processors = _shared_processors()

    if json_logs or app_env == "production":
        processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        processors.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib records (services, celery, uvicorn) share the same pipeline
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.info("reward_earned", user_id="...", amount=5)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach values to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all context values."""
    structlog.contextvars.clear_contextvars()
