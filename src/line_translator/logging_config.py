"""Structured logging setup (structlog over the stdlib logging module).

Two renderers:
- production: one JSON object per line, long values clipped
- anything else: colored console output

Logs go to stderr. Callers commonly write translated lines to stdout, and the
two streams must not interleave.
"""

import logging
import sys
from typing import TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

APP_NAME = "line-translator"

# Source lines, prompts and raw responses can be arbitrarily long
MAX_VALUE_CHARS = 300

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def add_app_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def clip_long_values(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Clip string values longer than MAX_VALUE_CHARS (the event itself is kept whole)."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = f"{value[:MAX_VALUE_CHARS]}... ({len(value)} chars)"
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    environment: str = "development",
    stream: TextIO = sys.stderr,
) -> None:
    """
    Route structlog through a single stdlib handler.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown names mean INFO)
        environment: "production" selects the JSON renderer
        stream: Destination of the handler
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    production = environment.lower() == "production"

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_name,
    ]
    if production:
        pre_chain += [clip_long_values, structlog.processors.format_exc_info]
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        pre_chain.append(structlog.processors.StackInfoRenderer())
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "Logging configured",
        log_level=logging.getLevelName(level),
        environment=environment,
        renderer="json" if production else "console",
    )
