"""
Centralized logging configuration for the SSO bridge.

Configures structlog for JSON output in production and console in development.
Credential-bearing keys are masked before rendering.
"""

import logging
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.types import EventDict, Processor

# Keys whose values must never reach a log sink verbatim
SENSITIVE_KEYS = frozenset(
    {"access_token", "client_secret", "code", "id_token", "password", "token"}
)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app"] = "ssobridge"
    return event_dict


def mask_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace credential values with a short hint."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and value:
            event_dict[key] = f"{value[:4]}***"
    return event_dict


def utc_timestamper(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO8601 UTC timestamp to log events."""
    now = datetime.now(UTC)
    event_dict["timestamp"] = now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return event_dict


def _renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def configure_logging(json_logs: bool = True, log_level: str = "INFO") -> None:
    """Configure logging for the entire application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        utc_timestamper,
        structlog.processors.StackInfoRenderer(),
        add_app_context,
        mask_credentials,
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Stdlib records (uvicorn, httpx) go through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(json_logs),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from verbose libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
