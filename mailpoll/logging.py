"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

from .config import LoggingConfig

# Probe requests hit the health server every few seconds.
_NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error")


def setup_logging(config: LoggingConfig | None = None, *, poller_name: str | None = None) -> None:
    """Configure structlog for the poller process.

    Parameters
    ----------
    config:
        Output settings.  Defaults to :class:`LoggingConfig` read from the
        environment (JSON lines at INFO, suitable for production / K8s).
    poller_name:
        If given, bound into the context so every event carries a
        ``poller`` field.
    """
    config = config or LoggingConfig()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if poller_name:
        structlog.contextvars.bind_contextvars(poller=poller_name)
