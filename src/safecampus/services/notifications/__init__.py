"""Notification services package."""

from safecampus.services.notifications.dispatcher import NotificationDispatcher, build_alert
from safecampus.services.notifications.event_bus import DomainEventBus

__all__ = ["DomainEventBus", "NotificationDispatcher", "build_alert"]
