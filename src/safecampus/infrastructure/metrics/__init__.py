"""Metrics infrastructure package."""

from safecampus.infrastructure.metrics.prometheus_metrics import (
    # SOS metrics
    SOS_TRIGGERED_TOTAL,
    SOS_RESOLVED_TOTAL,
    SOS_TIME_TO_RECOGNISE,
    ACTIVE_SOS,
    TOKEN_VALIDATIONS_TOTAL,
    # Notification metrics
    NOTIFICATIONS_SENT_TOTAL,
    # Safe walk metrics
    SAFE_WALKS_TOTAL,
    SAFE_WALK_ESCALATIONS,
    SAFE_WALK_FLAGS,
    # Best-effort metrics
    BEST_EFFORT_FAILURES_TOTAL,
    # API metrics
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION,
    RATE_LIMIT_EXCEEDED,
    # Helpers
    track_http_request,
    track_sos_resolution,
    update_system_info,
    # Router
    metrics_router,
)

__all__ = [
    "SOS_TRIGGERED_TOTAL",
    "SOS_RESOLVED_TOTAL",
    "SOS_TIME_TO_RECOGNISE",
    "ACTIVE_SOS",
    "TOKEN_VALIDATIONS_TOTAL",
    "NOTIFICATIONS_SENT_TOTAL",
    "SAFE_WALKS_TOTAL",
    "SAFE_WALK_ESCALATIONS",
    "SAFE_WALK_FLAGS",
    "BEST_EFFORT_FAILURES_TOTAL",
    "HTTP_REQUESTS_TOTAL",
    "HTTP_REQUEST_DURATION",
    "RATE_LIMIT_EXCEEDED",
    "track_http_request",
    "track_sos_resolution",
    "update_system_info",
    "metrics_router",
]
