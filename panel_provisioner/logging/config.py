"""Structured logging setup for the provisioning engine.

Outputs JSON (log shipping) or console (development) through structlog.

Usage:
    from panel_provisioner.logging import get_logger, setup_logging

    setup_logging(service_name="billing-worker")
    logger = get_logger(__name__)
    logger.info("server_provisioned", service_id=12, node_id=3)
"""

import contextlib
import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

from panel_provisioner.config import Settings

DEFAULT_SERVICE_NAME = "panel-provisioner"

# Third-party loggers that would otherwise log every panel request.
_NOISY_LOGGERS = ("httpx", "httpcore")


def _context_processors() -> list[Processor]:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # service, correlation_id, operation, order_id, service_id
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def setup_logging(
    service_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
) -> None:
    """Route structlog through stdlib logging to stdout.

    Arguments win over SERVICE_NAME, LOG_FORMAT and LOG_LEVEL from the
    environment; defaults are "panel-provisioner", "console" and "INFO".
    """
    service_name = service_name or os.getenv("SERVICE_NAME", DEFAULT_SERVICE_NAME)
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    level_name = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[*_context_processors(), _renderer(log_format)],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    get_logger(__name__).info("logging_initialized", log_format=log_format, log_level=level_name)


def setup_logging_from_settings(settings: Settings) -> None:
    setup_logging(settings.service_name, settings.log_format, settings.log_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_safely(logger: Any, level: str, event: str, **kwargs: Any) -> None:
    """Emit a log event, ignoring failures raised by the logger itself.

    Used on error paths where a broken log sink must not replace the error
    that is being reported.
    """
    with contextlib.suppress(Exception):
        getattr(logger, level)(event, **kwargs)
