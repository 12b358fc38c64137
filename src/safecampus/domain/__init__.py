"""
SafeCampus Domain Layer

Core business entities, value objects and the error taxonomy.
These models represent the domain logic independent of infrastructure.
"""

from safecampus.domain.enums import ActorRole, EmergencyType, TriggerMethod, WalkStatus
from safecampus.domain.models import (
    Actor,
    GeoPoint,
    LiveLocation,
    SafeWalkSession,
    SOSEvent,
    SOSSession,
    SOSStatus,
    UserProfile,
)

__all__ = [
    # Enums
    "ActorRole",
    "EmergencyType",
    "TriggerMethod",
    "WalkStatus",
    # Models
    "Actor",
    "UserProfile",
    "GeoPoint",
    "LiveLocation",
    "SOSEvent",
    "SOSStatus",
    "SOSSession",
    "SafeWalkSession",
]
