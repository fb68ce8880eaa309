"""structlog setup for the relay.

Events go through the stdlib logging backend to stdout, rendered either for
a terminal ("console") or as one JSON object per line ("json").
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

LOG_LEVEL_ENV = "SEEDLINK_RELAY_LOG_LEVEL"
LOG_FORMAT_ENV = "SEEDLINK_RELAY_LOG_FORMAT"

# Chatty third-party loggers, capped at WARNING unless DEBUG is requested
_QUIET_LOGGERS = ("websockets", "asyncio")


def setup_logging(
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name; falls back to SEEDLINK_RELAY_LOG_LEVEL, then INFO
        log_format: 'console' or 'json'; falls back to SEEDLINK_RELAY_LOG_FORMAT,
            then 'console'
    """
    level = level or os.environ.get(LOG_LEVEL_ENV, "INFO")
    log_format = log_format or os.environ.get(LOG_FORMAT_ENV, "console")
    log_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    library_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *_render_chain(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _render_chain(log_format: str) -> list[Any]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


class LogContext:
    """Bind key/value pairs to every event logged inside the block.

    The relay wraps the dispatch of each client frame in one of these so
    that registry and dispatcher events carry the connection id.
    """

    def __init__(self, **kwargs: Any) -> None:
        self._context = kwargs

    def __enter__(self) -> LogContext:
        structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self._context)
