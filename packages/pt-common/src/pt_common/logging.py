"""
Structured logging setup for PlanTrust.

Configures structlog for JSON-formatted structured logging across all
services. Every log line includes timestamp, level, service name, and
event. Per-request context (request_id) is bound at request time via
``structlog.contextvars``.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(service: str, level: str = "INFO", *, json: bool = True) -> None:
    """Configure structlog and the stdlib root logger for *service*.

    Args:
        service: Service name stamped onto every log line.
        level: Minimum log level name.
        json: Render JSON lines; ``False`` uses the human-readable console renderer.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _ServiceStamp(service),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


class _ServiceStamp:
    """Processor adding ``service`` to every event dict."""

    def __init__(self, service: str) -> None:
        self._service = service

    def __call__(self, logger: object, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", self._service)
        return event_dict
