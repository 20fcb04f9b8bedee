"""
Logging configuration for LinearVue.

This module configures structlog for JSON logging across the application.
"""

import logging
import re
from typing import Any

import structlog

from .settings import settings

_SECRET_KEYS = (
    "token",
    "password",
    "secret",
    "api_key",
    "connection_string",
    "database_url",
)

_SECRET_PATTERNS = (
    (r"://[^:/\s]+:[^@\s]+@", "://***@"),  # URLs with credentials
    (r"token=[^&\s]+", "token=***"),
    (r"password=[^&\s]+", "password=***"),
)


def redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Redact sensitive information from log events."""

    def redact_value(value: Any) -> Any:
        if isinstance(value, str):
            for pattern, replacement in _SECRET_PATTERNS:
                value = re.sub(pattern, replacement, value)
            return value
        elif isinstance(value, dict):
            return {k: redact_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [redact_value(item) for item in value]
        return value

    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_KEYS):
            event_dict[key] = "***REDACTED***"
        else:
            event_dict[key] = redact_value(event_dict[key])

    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog for JSON output."""
    logging.basicConfig(
        format="%(message)s",
        level=(level or settings.log_level).upper(),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_secrets,  # Redact secrets before rendering
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a logger carrying service context.

    Stays lazy until first use, so module-level loggers pick up whatever
    ``configure_logging`` installs later.
    """
    return structlog.get_logger(name, service="linearvue", env=settings.env)
