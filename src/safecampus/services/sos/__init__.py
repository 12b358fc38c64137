"""SOS lifecycle services package."""

from safecampus.services.sos.device_agent import SOSDeviceAgent
from safecampus.services.sos.lifecycle_manager import SOSLifecycleManager, TriggerResult
from safecampus.services.sos.tokens import SessionTokenService

__all__ = [
    "SOSLifecycleManager",
    "TriggerResult",
    "SOSDeviceAgent",
    "SessionTokenService",
]
