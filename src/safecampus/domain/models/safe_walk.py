"""
Safe Walk Domain Model

A student announces a walk from one place to another with an expected
duration. Security and wardens monitor it; the walk can escalate into
a separate SOS event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional

from safecampus.domain.enums.walk_status import WalkStatus
from safecampus.domain.models.geo import GeoPoint
from safecampus.domain.models.sos_event import AssignedActor
from safecampus.domain.models.timestamps import from_iso, to_iso, utc_now


class WalkEntryKind(StrEnum):
    """Kind of walk timeline entry."""

    STATUS = "status"
    MESSAGE = "message"


@dataclass(frozen=True)
class WalkPlace:
    """Named point on a walk (start or destination)."""

    lat: float
    lng: float
    name: str = ""

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng, address=self.name or None)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict) -> "WalkPlace":
        return cls(lat=float(data["lat"]), lng=float(data["lng"]), name=data.get("name") or "")


@dataclass(frozen=True)
class WalkTimelineEntry:
    """Append-only walk audit entry."""

    time: datetime
    kind: WalkEntryKind
    details: str
    by: str

    def to_dict(self) -> dict:
        return {
            "time": to_iso(self.time),
            "type": self.kind.value,
            "details": self.details,
            "by": self.by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WalkTimelineEntry":
        return cls(
            time=from_iso(data.get("time")) or utc_now(),
            kind=WalkEntryKind(data.get("type") or WalkEntryKind.STATUS.value),
            details=data.get("details", ""),
            by=data.get("by", ""),
        )


@dataclass
class SafeWalkSession:
    """
    Monitored walk.

    Attributes:
        id: Walk identifier
        user_id: Walking student
        user_name: Display name
        hostel_id: Student hostel
        start_location: Where the walk began
        destination: Where the walk should end
        status: Current WalkStatus
        expected_duration: Minutes the walk should take
        note: Free text from the student
        start_time: When the walk started
        updated_at: Last mutation time
        escort_requested: Student asked for an escort
        assigned_escort: Escort snapshot
        last_distance: Metres to destination at the last recorded fix
        linked_sos_id: SOS event raised by escalation
        timeline: Append-only audit trail
    """

    id: str
    user_id: str
    start_location: WalkPlace
    destination: WalkPlace
    expected_duration: int
    user_name: str = ""
    hostel_id: Optional[str] = None
    status: WalkStatus = WalkStatus.ACTIVE
    note: Optional[str] = None
    start_time: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    escort_requested: bool = False
    assigned_escort: Optional[AssignedActor] = None
    last_distance: Optional[float] = None
    linked_sos_id: Optional[str] = None
    timeline: list[WalkTimelineEntry] = field(default_factory=list)

    @property
    def expected_arrival(self) -> datetime:
        return self.start_time + timedelta(minutes=self.expected_duration)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Past the expected arrival time and not yet finished."""
        if self.status.is_terminal:
            return False
        return (now or utc_now()) > self.expected_arrival

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "hostelId": self.hostel_id,
            "startLocation": self.start_location.to_dict(),
            "destination": self.destination.to_dict(),
            "status": self.status.value,
            "expectedDuration": self.expected_duration,
            "note": self.note,
            "startTime": to_iso(self.start_time),
            "updatedAt": to_iso(self.updated_at),
            "escortRequested": self.escort_requested,
            "assignedEscort": self.assigned_escort.to_dict() if self.assigned_escort else None,
            "lastDistance": self.last_distance,
            "linkedSosId": self.linked_sos_id,
            "timeline": [entry.to_dict() for entry in self.timeline],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SafeWalkSession":
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_name=data.get("userName") or "",
            hostel_id=data.get("hostelId"),
            start_location=WalkPlace.from_dict(data["startLocation"]),
            destination=WalkPlace.from_dict(data["destination"]),
            status=WalkStatus(data.get("status") or WalkStatus.ACTIVE.value),
            expected_duration=int(data.get("expectedDuration") or 0),
            note=data.get("note"),
            start_time=from_iso(data.get("startTime")) or utc_now(),
            updated_at=from_iso(data.get("updatedAt")),
            escort_requested=bool(data.get("escortRequested", False)),
            assigned_escort=AssignedActor.from_dict(data.get("assignedEscort")),
            last_distance=data.get("lastDistance"),
            linked_sos_id=data.get("linkedSosId"),
            timeline=[WalkTimelineEntry.from_dict(entry) for entry in data.get("timeline") or []],
        )
