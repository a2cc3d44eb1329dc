"""Observability: structured logging and metrics.

Provides standardized observability primitives using structlog for logging
and Prometheus for metrics.
"""

from chatline.observability.logging import (
    PIIRedactor,
    get_logger,
    setup_logging,
)
from chatline.observability.metrics import (
    ACTIVE_SESSIONS,
    ACTIVITIES_DELIVERED,
    BATCHES_DISCARDED,
    BATCHES_INGESTED,
    ERRORS,
    POLL_CYCLES,
    RECONNECTS,
    TOKEN_REFRESHES,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "PIIRedactor",
    # Metrics
    "ACTIVE_SESSIONS",
    "ACTIVITIES_DELIVERED",
    "BATCHES_DISCARDED",
    "BATCHES_INGESTED",
    "ERRORS",
    "POLL_CYCLES",
    "RECONNECTS",
    "TOKEN_REFRESHES",
]
