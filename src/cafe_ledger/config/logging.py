"""Structured logging for the cafe ledger.

Ledger events carry ``Decimal`` amounts; they are rendered as plain strings
("1250000.00") so JSON lines stay exact and readable. Chatty client libraries
(Firestore watch, Gemini transport, websockets) are held at WARNING unless the
ledger itself runs at DEBUG.
"""

import logging
import sys
from decimal import Decimal
from typing import Any, Literal

import structlog

from cafe_ledger.config.settings import get_settings

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

_NOISY_LOGGERS = (
    "google.cloud.firestore",
    "google.api_core",
    "google_genai",
    "httpx",
    "websockets",
)


def _amounts_as_text(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = format(value, "f")
    return event_dict


def configure_logging(
    level: LogLevel | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog over the stdlib root logger.

    Args:
        level: Log level for ledger loggers. Defaults to ``LOG_LEVEL``.
        format: ``json`` for one object per line, ``console`` for humans.
            Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
        force=True,
    )
    library_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer(
            ensure_ascii=False
        )
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _amounts_as_text,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Return a logger for ``name`` with ``context`` already bound."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger
