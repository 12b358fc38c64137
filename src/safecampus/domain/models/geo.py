"""
Geographic value objects and great-circle distance.
"""

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_METERS = 6371e3


@dataclass(frozen=True)
class GeoPoint:
    """
    A latitude/longitude pair.

    Attributes:
        lat: Latitude in decimal degrees
        lng: Longitude in decimal degrees
        address: Optional human-readable address
    """

    lat: float
    lng: float
    address: Optional[str] = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude must be within [-90, 90], got {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude must be within [-180, 180], got {self.lng}")

    def to_dict(self) -> dict:
        data: dict = {"lat": self.lat, "lng": self.lng}
        if self.address:
            data["address"] = self.address
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GeoPoint":
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class PositionFix:
    """
    A single position report from a device.

    Mirrors what an OS geolocation callback delivers.
    """

    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points.

    Returns:
        Distance in metres
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c
