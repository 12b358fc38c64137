"""
Live Location Domain Model

One record per user in the realtime location store, continuously
overwritten by the owning device. Staleness is derived from
``last_updated``; stale records are not deleted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional

from safecampus.domain.models.geo import GeoPoint, PositionFix
from safecampus.domain.models.timestamps import from_iso, to_iso, utc_now


class LocationStatus(StrEnum):
    """Freshness of a live location record."""

    ACTIVE = "active"
    STALE = "stale"
    OFFLINE = "offline"


@dataclass(frozen=True)
class LiveLocation:
    """
    Last known position of a user.

    Attributes:
        latitude: Decimal degrees
        longitude: Decimal degrees
        last_updated: When the fix was written
        speed: Metres per second, when the device reports it
        heading: Degrees from north
        accuracy: Horizontal accuracy in metres
        sos_id: Active SOS the fix belongs to, if any
    """

    latitude: float
    longitude: float
    last_updated: datetime
    speed: Optional[float] = None
    heading: Optional[float] = None
    accuracy: Optional[float] = None
    sos_id: Optional[str] = None

    @classmethod
    def from_fix(
        cls,
        fix: PositionFix,
        sos_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "LiveLocation":
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            last_updated=now or utc_now(),
            speed=fix.speed,
            heading=fix.heading,
            accuracy=fix.accuracy,
            sos_id=sos_id,
        )

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)

    def status(
        self,
        now: Optional[datetime] = None,
        active_within: timedelta = timedelta(seconds=30),
        stale_within: timedelta = timedelta(minutes=5),
    ) -> LocationStatus:
        """
        Classify freshness from the age of the last fix.

        Args:
            now: Reference time (defaults to the current time)
            active_within: Age below which the record is ACTIVE
            stale_within: Age below which the record is STALE

        Returns:
            ACTIVE, STALE or OFFLINE
        """
        age = (now or utc_now()) - self.last_updated
        if age < active_within:
            return LocationStatus.ACTIVE
        if age < stale_within:
            return LocationStatus.STALE
        return LocationStatus.OFFLINE

    def to_dict(self) -> dict:
        data: dict = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "lastUpdated": to_iso(self.last_updated),
        }
        for key, value in (
            ("speed", self.speed),
            ("heading", self.heading),
            ("accuracy", self.accuracy),
            ("sosId", self.sos_id),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LiveLocation":
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            last_updated=from_iso(data.get("lastUpdated")) or utc_now(),
            speed=data.get("speed"),
            heading=data.get("heading"),
            accuracy=data.get("accuracy"),
            sos_id=data.get("sosId"),
        )
