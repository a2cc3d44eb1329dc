"""Structured logging configuration using structlog.

JSON lines for production, a colored console renderer for development.
Credentials are masked before rendering unless redaction is disabled.
"""

import logging
import re
import sys
from collections.abc import Mapping
from typing import Any, cast

import structlog
from structlog.types import EventDict, WrappedLogger

from chatline.config.models.observability import LoggingConfig

# Keys whose values are never rendered
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "token",
    "secret",
    "authorization",
    "credential",
    "email",
    "phone",
})

BEARER_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_PATTERN = re.compile(r"\+?[\d\s\-\(\)]{10,}")


class PIIRedactor:
    """Processor masking credentials and contact details.

    Values under a sensitive key are replaced outright; free-text values
    are scanned for bearer tokens, e-mail addresses and phone numbers.
    """

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        return cast(EventDict, self._redact(event_dict))

    def _redact(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {
                key: "[REDACTED]" if str(key).lower() in SENSITIVE_KEYS else self._redact(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._redact(item) for item in value]
        if isinstance(value, str):
            value = BEARER_PATTERN.sub("Bearer [REDACTED]", value)
            value = EMAIL_PATTERN.sub("[EMAIL]", value)
            return PHONE_PATTERN.sub("[PHONE]", value)
        return value


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog.

    Args:
        config: Logging options; the ``observability.logging`` settings
            section when omitted
    """
    if config is None:
        from chatline.config import get_settings

        config = get_settings().observability.logging

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if config.redact_pii:
        processors.append(PIIRedactor())

    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, config.level)),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to ``name`` (typically the module's ``__name__``)."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
