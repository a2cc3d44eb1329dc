"""Prometheus metrics for chatline sessions."""

from prometheus_client import Counter, Gauge

# Ledger metrics
BATCHES_INGESTED = Counter(
    "chatline_batches_ingested_total",
    "Activity batches that advanced the watermark",
    labelnames=["mode"],
)

BATCHES_DISCARDED = Counter(
    "chatline_batches_discarded_total",
    "Activity batches discarded as stale or duplicate",
    labelnames=["mode"],
)

ACTIVITIES_DELIVERED = Counter(
    "chatline_activities_delivered_total",
    "Activities appended to a session log",
    labelnames=["mode"],
)

# Channel metrics
POLL_CYCLES = Counter(
    "chatline_poll_cycles_total",
    "Poll cycles executed",
    labelnames=["kind", "outcome"],
)

RECONNECTS = Counter(
    "chatline_reconnects_total",
    "Push channel reconnect attempts",
    labelnames=["outcome"],
)

TOKEN_REFRESHES = Counter(
    "chatline_token_refreshes_total",
    "Credential refresh attempts",
    labelnames=["outcome"],
)

# Error metrics
ERRORS = Counter(
    "chatline_errors_total",
    "Errors emitted to session consumers",
    labelnames=["error_code"],
)

# Session metrics
ACTIVE_SESSIONS = Gauge(
    "chatline_active_sessions",
    "Number of conversations not yet cleaned up",
    labelnames=["mode"],
)
