"""Background tracking bridge port and adapters."""

from safecampus.infrastructure.tracking.bridge import (
    TrackingBridge,
    TrackingRequest,
    UnavailableTrackingBridge,
)
from safecampus.infrastructure.tracking.foreground import ForegroundTrackingService
from safecampus.infrastructure.tracking.position_source import PositionSource, QueuePositionSource

__all__ = [
    "TrackingBridge",
    "TrackingRequest",
    "UnavailableTrackingBridge",
    "ForegroundTrackingService",
    "PositionSource",
    "QueuePositionSource",
]
