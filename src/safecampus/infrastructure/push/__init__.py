"""Push notification port and adapters."""

from safecampus.infrastructure.push.sender import LoggingPushSender, PushMessage, PushSender

__all__ = ["PushSender", "PushMessage", "LoggingPushSender"]
