# graphyy/logging_config.py
from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

SENSITIVE_FIELDS = ("token", "github_token", "api_key", "authorization")


def filter_sensitive_data(logger, log_method, event_dict):
    """structlog processor: never let credentials reach the log stream."""
    for field in SENSITIVE_FIELDS:
        if field in event_dict:
            event_dict[field] = "[FILTERED]"
    return event_dict


def configure_logging(level: str = "INFO", *, json: bool = True, stream: IO[str] | None = None) -> None:
    """
    stdlib logging + structlog, one event per line.

    Logs go to stderr by default: stdout is reserved for the CLI's JSON result line.
    """
    if stream is None:
        stream = sys.stderr
    log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=stream, level=log_level, force=True)

    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            filter_sensitive_data,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
