"""
Safe Walk Status Enumeration
"""

from enum import StrEnum


class WalkStatus(StrEnum):
    """
    Safe walk lifecycle states.

    A walk starts ACTIVE and may move freely between the non-terminal
    states. COMPLETED, CANCELLED and SOS are terminal.
    """

    ACTIVE = "active"
    PAUSED = "paused"
    DELAYED = "delayed"
    OFF_ROUTE = "off-route"
    ESCORT_REQUESTED = "escort_requested"
    DANGER = "danger"
    """Student reported danger. Escalates into a new SOS event."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SOS = "sos"
    """Walk was escalated; the linked SOS event carries the emergency."""

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are allowed."""
        return self in TERMINAL_WALK_STATUSES

    @property
    def accepts_route_flags(self) -> bool:
        """Check if automatic position checks may change this status."""
        return self in ROUTE_FLAGGABLE_STATUSES

    @property
    def escalates(self) -> bool:
        """Check if entering this status raises an SOS."""
        return self in (WalkStatus.DANGER, WalkStatus.SOS)


TERMINAL_WALK_STATUSES: frozenset[WalkStatus] = frozenset({
    WalkStatus.COMPLETED,
    WalkStatus.CANCELLED,
    WalkStatus.SOS,
})

# Only plain walking can be flagged from a fix; paused, escort and
# danger states belong to the student or the responders
ROUTE_FLAGGABLE_STATUSES: frozenset[WalkStatus] = frozenset({
    WalkStatus.ACTIVE,
    WalkStatus.DELAYED,
})

# Statuses shown on the security/warden monitoring views
MONITORED_WALK_STATUSES: tuple[WalkStatus, ...] = (
    WalkStatus.ACTIVE,
    WalkStatus.PAUSED,
    WalkStatus.DELAYED,
    WalkStatus.OFF_ROUTE,
    WalkStatus.ESCORT_REQUESTED,
    WalkStatus.DANGER,
)
