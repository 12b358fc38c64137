"""Monitoring infrastructure package."""

from safecampus.infrastructure.monitoring.sentry_integration import (
    capture_exception_with_context,
    init_sentry,
    set_actor_context,
)

__all__ = [
    "init_sentry",
    "set_actor_context",
    "capture_exception_with_context",
]
