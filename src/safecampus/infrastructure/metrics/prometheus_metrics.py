"""
Prometheus Metrics

Metrics for SafeCampus observability.
Exposes metrics at /metrics endpoint for Prometheus scraping.

ARCHITECTURE: Metrics are decoupled from business logic.
Only increment/observe; never block on metrics operations.
"""

from fastapi import APIRouter, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from safecampus.config.logging_config import get_logger

logger = get_logger(__name__)

# =============================================================================
# SOS LIFECYCLE METRICS
# =============================================================================

SOS_TRIGGERED_TOTAL = Counter(
    "safecampus_sos_triggered_total",
    "SOS trigger attempts",
    ["result"],  # created, already_active, resumed
)

SOS_RESOLVED_TOTAL = Counter(
    "safecampus_sos_resolved_total",
    "SOS events closed",
    ["outcome"],  # resolved, cancelled, cancelled_token
)

SOS_TIME_TO_RECOGNISE = Histogram(
    "safecampus_sos_time_to_recognise_seconds",
    "Time from trigger to security recognition",
    buckets=[10, 30, 60, 120, 300, 600, 1800],
)

ACTIVE_SOS = Gauge(
    "safecampus_active_sos",
    "Unresolved SOS events created or closed by this process",
)

TOKEN_VALIDATIONS_TOTAL = Counter(
    "safecampus_sos_token_validations_total",
    "SOS session token checks",
    ["result"],  # valid, missing, inactive, expired, mismatch, resolved
)

# =============================================================================
# NOTIFICATION METRICS
# =============================================================================

NOTIFICATIONS_SENT_TOTAL = Counter(
    "safecampus_notifications_sent_total",
    "Push notifications by audience",
    ["audience", "status"],  # security|warden, sent|failed
)

# =============================================================================
# SAFE WALK METRICS
# =============================================================================

SAFE_WALKS_TOTAL = Counter(
    "safecampus_safe_walks_total",
    "Safe walks by final outcome",
    ["outcome"],  # started, completed, cancelled, sos
)

SAFE_WALK_ESCALATIONS = Counter(
    "safecampus_safe_walk_escalations_total",
    "Safe walks escalated into SOS events",
    ["result"],  # escalated, already_active
)

SAFE_WALK_FLAGS = Counter(
    "safecampus_safe_walk_flags_total",
    "Automatic walk flags raised by position monitoring",
    ["flag"],  # off-route, delayed
)

# =============================================================================
# BEST-EFFORT COMPONENT METRICS
# =============================================================================

BEST_EFFORT_FAILURES_TOTAL = Counter(
    "safecampus_best_effort_failures_total",
    "Failures of secondary mechanisms that do not fail the primary operation",
    ["component"],  # location_write, session_deactivate, tracking_start, ...
)

# =============================================================================
# API METRICS
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "safecampus_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],  # endpoint is the route template
)

HTTP_REQUEST_DURATION = Histogram(
    "safecampus_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

RATE_LIMIT_EXCEEDED = Counter(
    "safecampus_rate_limit_exceeded_total",
    "Rate limit exceeded events",
    ["client_type"],  # token, sos, standard
)

# =============================================================================
# SYSTEM INFO
# =============================================================================

SYSTEM_INFO = Info(
    "safecampus_system",
    "SafeCampus system information",
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def track_sos_resolution(outcome: str) -> None:
    """Record an SOS event leaving the active set."""
    SOS_RESOLVED_TOTAL.labels(outcome=outcome).inc()
    ACTIVE_SOS.dec()


def track_http_request(method: str, endpoint: str, status_code: int, seconds: float) -> None:
    HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
    HTTP_REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(seconds)


# =============================================================================
# METRICS ENDPOINT
# =============================================================================

metrics_router = APIRouter(tags=["metrics"])


@metrics_router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping.
    """
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST,
    )


def update_system_info(environment: str, version: str = "0.1.0") -> None:
    """Update system info metric with current environment."""
    SYSTEM_INFO.info({
        "version": version,
        "environment": environment,
    })
