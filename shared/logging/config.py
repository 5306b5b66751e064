import logging
import os
import re
import sys
from typing import Literal, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***"

# Field names that may carry credentials; their values never reach the output
_SECRET_FIELD_RE = re.compile(r"(password|passwd|secret|token|encryption_key)", re.IGNORECASE)

# Libraries that log every request at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore")


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key in event_dict:
        if key != "event" and _SECRET_FIELD_RE.search(key):
            event_dict[key] = REDACTED
    return event_dict


def build_processors(log_format: str, colors: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=False))
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=colors, exception_formatter=structlog.dev.plain_traceback
            )
        )
    return processors


def setup_logging(
    tool_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for a command-line tool.

    Args:
        tool_name: "n8n-bootstrap" or "chainloader"; bound as ``tool`` on every
                   entry. Falls back to BOOTSTRAP_TOOL or "bootstrap".
        log_format: "console" for an operator at a terminal, "json" when the
                    output is collected (cloud-init, CI). Falls back to
                    LOG_FORMAT or "console".
        log_level: Falls back to LOG_LEVEL or "INFO".
        stream: Defaults to stdout. Fatal diagnostics are not logged here;
                shared.console writes them to stderr.
    """
    tool_name = tool_name or os.getenv("BOOTSTRAP_TOOL", "bootstrap")
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    stream = stream or sys.stdout

    numeric_level = getattr(logging, log_level, logging.INFO)
    logging.basicConfig(format="%(message)s", stream=stream, level=numeric_level, force=True)
    chatty_level = numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    structlog.configure(
        processors=build_processors(log_format, colors=_is_tty(stream)),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(tool=tool_name)

    structlog.get_logger().debug(
        "logging_initialized", log_format=log_format, log_level=log_level
    )


def _is_tty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger; ``name`` defaults to the caller's module."""
    return structlog.get_logger(name)
