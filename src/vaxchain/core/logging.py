"""
VaxChain - Structured Logging
=============================

structlog configuration shared by the API, the chain producer and the CLI:
- JSON output by default, console rendering when DEBUG is on
- ISO timestamps and log level on every event
- Service name and version stamped on every event
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO

import structlog

from .config import Settings


def _service_fields(settings: Settings):
    def add_service_fields(
        logger: Any, method_name: str, event_dict: Dict[str, Any]
    ) -> Dict[str, Any]:
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("version", settings.VERSION)
        return event_dict

    return add_service_fields


def configure_logging(settings: Settings, stream: Optional[TextIO] = None) -> None:
    """Configure structlog and the stdlib root logger for the process."""

    stream = stream or sys.stdout

    level = logging.getLevelName(settings.LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _service_fields(settings),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    if settings.DEBUG:
        # Development: human-readable logs
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            _service_fields(settings),
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries (uvicorn, sqlalchemy) log through the stdlib
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(handler)
