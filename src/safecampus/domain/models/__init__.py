"""Domain models package."""

from safecampus.domain.models.actor import Actor, UserProfile
from safecampus.domain.models.geo import GeoPoint, PositionFix, haversine_distance
from safecampus.domain.models.live_location import LiveLocation, LocationStatus
from safecampus.domain.models.safe_walk import (
    SafeWalkSession,
    WalkEntryKind,
    WalkPlace,
    WalkTimelineEntry,
)
from safecampus.domain.models.sos_event import (
    AssignedActor,
    SOSEvent,
    SOSStatus,
    TimelineEntry,
)
from safecampus.domain.models.sos_session import SOSSession

__all__ = [
    # Actors
    "Actor",
    "UserProfile",
    # Geography
    "GeoPoint",
    "PositionFix",
    "haversine_distance",
    # Live location
    "LiveLocation",
    "LocationStatus",
    # SOS
    "SOSEvent",
    "SOSStatus",
    "TimelineEntry",
    "AssignedActor",
    "SOSSession",
    # Safe walk
    "SafeWalkSession",
    "WalkPlace",
    "WalkTimelineEntry",
    "WalkEntryKind",
]
