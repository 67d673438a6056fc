"""
Structured logging setup.

Library code only ever calls ``structlog.get_logger()``; applications call
``configure_logging()`` once at startup to pick the level and renderer.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from config.settings import LoggingConfig, get_settings


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Wire stdlib logging and structlog processors (JSON or console renderer)."""
    config = config or get_settings().logging
    level = getattr(logging, str(config.level).upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
