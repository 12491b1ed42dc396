# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Logging setup for the semcache command line.

The library itself never configures logging: modules only call
``structlog.get_logger(__name__)`` and leave rendering to the host
application. The CLI calls :func:`configure_logging` once per run, routing
structlog and stdlib records through one stderr handler so that command
output on stdout stays machine readable.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from .config import Settings, get_settings

# Libraries that log every request or statement at INFO/DEBUG
CHATTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "sentence_transformers")


def app_context(settings: Settings) -> Processor:
    """Build a processor stamping each event with the cache identity."""

    def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", settings.app_name)
        event_dict.setdefault("version", settings.app_version)
        event_dict.setdefault("collection", settings.collection_name)
        return event_dict

    return add_app_context


def resolve_level(settings: Settings, verbose: bool = False) -> int:
    if verbose:
        return logging.DEBUG
    return getattr(logging, settings.log_level.upper())


def configure_logging(settings: Settings | None = None, verbose: bool = False) -> None:
    """Route structlog and stdlib logging to stderr.

    Args:
        settings: Source of level, format and app identity. Defaults to
            :func:`get_settings`.
        verbose: Force DEBUG and let third-party loggers through as well.
    """
    settings = settings or get_settings()
    level = resolve_level(settings, verbose)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        app_context(settings),
    ]

    if settings.log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    chatty_level = logging.DEBUG if verbose else max(level, logging.WARNING)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)
