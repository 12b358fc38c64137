"""Domain enums package."""

from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.enums.walk_status import (
    MONITORED_WALK_STATUSES,
    TERMINAL_WALK_STATUSES,
    WalkStatus,
)

__all__ = [
    "ActorRole",
    "EmergencyType",
    "TriggerMethod",
    "WalkStatus",
    "TERMINAL_WALK_STATUSES",
    "MONITORED_WALK_STATUSES",
]
