"""
Safe walk position heuristics.

Off-route detection is monotonicity based: a walk is flagged when the
distance to the destination grows by more than a threshold between two
recorded fixes. It is not a path-deviation algorithm.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from safecampus.domain.models.geo import GeoPoint, haversine_distance

DEFAULT_OFF_ROUTE_THRESHOLD_METERS = 20.0


@dataclass(frozen=True)
class RouteCheck:
    """Result of checking one fix against the destination."""

    current_distance: float
    is_off_route: bool


def distance_increase_is_off_route(
    previous_distance: Optional[float],
    current_distance: float,
    threshold: float = DEFAULT_OFF_ROUTE_THRESHOLD_METERS,
) -> bool:
    """
    True when the distance grew by strictly more than ``threshold``.

    The first fix of a walk (no previous distance) is never off-route.
    """
    if previous_distance is None:
        return False
    return current_distance - previous_distance > threshold


def check_off_route(
    current: GeoPoint,
    destination: GeoPoint,
    previous_distance: Optional[float],
    threshold: float = DEFAULT_OFF_ROUTE_THRESHOLD_METERS,
) -> RouteCheck:
    distance = haversine_distance(current.lat, current.lng, destination.lat, destination.lng)
    return RouteCheck(
        current_distance=distance,
        is_off_route=distance_increase_is_off_route(previous_distance, distance, threshold),
    )


def is_delayed(start_time: datetime, expected_duration_minutes: int, now: datetime) -> bool:
    """Past ``start_time + expected_duration``."""
    return now > start_time + timedelta(minutes=expected_duration_minutes)
