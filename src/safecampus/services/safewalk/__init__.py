"""Safe walk monitoring package."""

from safecampus.services.safewalk.monitor import PositionReport, SafeWalkMonitor, WalkEscalation
from safecampus.services.safewalk.route_check import (
    DEFAULT_OFF_ROUTE_THRESHOLD_METERS,
    RouteCheck,
    check_off_route,
    distance_increase_is_off_route,
    is_delayed,
)

__all__ = [
    "SafeWalkMonitor",
    "WalkEscalation",
    "PositionReport",
    "RouteCheck",
    "check_off_route",
    "distance_increase_is_off_route",
    "is_delayed",
    "DEFAULT_OFF_ROUTE_THRESHOLD_METERS",
]
