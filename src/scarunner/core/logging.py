"""Structured logging configuration, structlog routed through stdlib logging."""

import logging
import logging.config
import os
from typing import Optional

import structlog


LOG_LEVEL_ENV_VAR = "SCARUNNER_LOG_LEVEL"
LOG_FORMAT_ENV_VAR = "SCARUNNER_LOG_FORMAT"


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure structlog and stdlib logging.

    Args:
        level: Log level name; falls back to SCARUNNER_LOG_LEVEL, then INFO
        fmt: "console" or "json"; falls back to SCARUNNER_LOG_FORMAT, then console

    Logs go to stderr so that report output on stdout stays machine readable.
    """
    log_level = (level or os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")).upper()
    log_format = (fmt or os.environ.get(LOG_FORMAT_ENV_VAR, "console")).lower()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": log_level,
            },
            "loggers": {
                "scarunner": {"level": log_level},
                "aiohttp": {"level": "WARNING"},
                "asyncio": {"level": "WARNING"},
            },
        }
    )
