"""
SOS Event Domain Model

One SOSEvent exists per emergency episode. Events are created by the
triggering device, mutated by security/warden actors and by the owner,
and never hard-deleted.

SAFETY_NOTE: Status is a two-flag composite, not an enum. Both flags
only ever move false -> true, and ``resolved`` without ``recognised``
is a legal state (rapid cancel). Readers must tolerate every
combination.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.models.geo import GeoPoint
from safecampus.domain.models.timestamps import from_iso, to_iso, utc_now


# Timeline action labels
ACTION_TRIGGERED = "SOS Triggered"
ACTION_DETAILS_ADDED = "Details Added"
ACTION_RECOGNISED = "SOS Recognised by Security"
ACTION_WARDEN_ACKNOWLEDGED = "Warden Acknowledged"
ACTION_RESOLVED = "Resolved"
ACTION_CANCELLED = "Cancelled by Student"
ACTION_CANCELLED_WITH_TOKEN = "Cancelled by Student (Token)"

CANCEL_SUMMARY = "Cancelled by student"


@dataclass(frozen=True)
class SOSStatus:
    """Two independent monotonic flags."""

    recognised: bool = False
    resolved: bool = False

    @property
    def is_in_progress(self) -> bool:
        """Recognised by security but not yet resolved."""
        return self.recognised and not self.resolved

    def to_dict(self) -> dict:
        return {"recognised": self.recognised, "resolved": self.resolved}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SOSStatus":
        data = data or {}
        return cls(
            recognised=bool(data.get("recognised", False)),
            resolved=bool(data.get("resolved", False)),
        )


@dataclass(frozen=True)
class AssignedActor:
    """Snapshot of the responder an event (or walk) is assigned to."""

    id: str
    name: str
    role: str = ActorRole.SECURITY.value

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["AssignedActor"]:
        if not data:
            return None
        return cls(id=data["id"], name=data.get("name", ""), role=data.get("role", ""))


@dataclass(frozen=True)
class TimelineEntry:
    """
    One audit trail entry.

    Entries are appended, never removed or reordered.
    """

    time: datetime
    action: str
    by: str
    note: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"time": to_iso(self.time), "action": self.action, "by": self.by}
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineEntry":
        return cls(
            time=from_iso(data.get("time")) or utc_now(),
            action=data.get("action", ""),
            by=data.get("by", ""),
            note=data.get("note"),
        )


@dataclass
class SOSEvent:
    """
    Emergency episode record.

    Attributes:
        id: Opaque unique identifier
        user_id: Owner (the person in distress)
        user_name: Display name, pseudonymised for students
        user_phone: Contact phone
        role: Owner role
        hostel_id: Owner hostel (drives warden routing)
        room_number: Owner room
        status: Recognised/resolved flags
        recognised_by: Security actor id that recognised the event
        assigned_to: Responder snapshot
        location: Position at trigger time (immutable)
        live_location: Last known position
        timeline: Append-only audit trail
        emergency_type: Category
        trigger_method: How the alert was raised
        description: Free text added after the trigger
        voice_transcript: Transcript added after the trigger
        is_details_added: Whether the owner enriched the alert
        triggered_at: Client clock at trigger
        created_at: Server clock at creation
        resolved_at: Server clock at resolution
        resolution_summary: Responder or owner summary
        notification_sent: Dispatcher bookkeeping
        notification_timestamp: When fan-out completed
    """

    id: str
    user_id: str
    user_name: str = "Unknown Student"
    user_phone: str = ""
    role: ActorRole = ActorRole.STUDENT
    hostel_id: Optional[str] = None
    room_number: str = "N/A"

    status: SOSStatus = field(default_factory=SOSStatus)
    recognised_by: Optional[str] = None
    assigned_to: Optional[AssignedActor] = None

    location: Optional[GeoPoint] = None
    live_location: Optional[GeoPoint] = None

    timeline: list[TimelineEntry] = field(default_factory=list)

    emergency_type: EmergencyType = EmergencyType.OTHER
    trigger_method: TriggerMethod = TriggerMethod.MANUAL_GESTURE
    description: Optional[str] = None
    voice_transcript: Optional[str] = None
    is_details_added: bool = False

    triggered_at: datetime = field(default_factory=utc_now)
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_summary: Optional[str] = None

    notification_sent: bool = False
    notification_timestamp: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status.resolved

    @property
    def is_recognised(self) -> bool:
        return self.status.recognised

    def to_dict(self) -> dict:
        """Serialize to the stored document shape."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "userName": self.user_name,
            "userPhone": self.user_phone,
            "role": self.role.value,
            "hostelId": self.hostel_id,
            "roomNumber": self.room_number,
            "status": self.status.to_dict(),
            "recognisedBy": self.recognised_by,
            "assignedTo": self.assigned_to.to_dict() if self.assigned_to else None,
            "location": self.location.to_dict() if self.location else None,
            "liveLocation": self.live_location.to_dict() if self.live_location else None,
            "timeline": [entry.to_dict() for entry in self.timeline],
            "emergencyType": self.emergency_type.value,
            "triggerMethod": self.trigger_method.value,
            "description": self.description,
            "voiceTranscript": self.voice_transcript,
            "isDetailsAdded": self.is_details_added,
            "triggeredAt": to_iso(self.triggered_at),
            "createdAt": to_iso(self.created_at),
            "resolvedAt": to_iso(self.resolved_at),
            "resolutionSummary": self.resolution_summary,
            "notificationSent": self.notification_sent,
            "notificationTimestamp": to_iso(self.notification_timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SOSEvent":
        """Create an event from a stored document."""
        location = data.get("location")
        live_location = data.get("liveLocation")
        return cls(
            id=data["id"],
            user_id=data["userId"],
            user_name=data.get("userName") or "Unknown Student",
            user_phone=data.get("userPhone") or "",
            role=ActorRole.parse(data.get("role")),
            hostel_id=data.get("hostelId"),
            room_number=data.get("roomNumber") or "N/A",
            status=SOSStatus.from_dict(data.get("status")),
            recognised_by=data.get("recognisedBy"),
            assigned_to=AssignedActor.from_dict(data.get("assignedTo")),
            location=GeoPoint.from_dict(location) if location else None,
            live_location=GeoPoint.from_dict(live_location) if live_location else None,
            timeline=[TimelineEntry.from_dict(entry) for entry in data.get("timeline") or []],
            emergency_type=EmergencyType(data.get("emergencyType") or EmergencyType.OTHER.value),
            trigger_method=TriggerMethod(data.get("triggerMethod") or TriggerMethod.MANUAL_GESTURE.value),
            description=data.get("description"),
            voice_transcript=data.get("voiceTranscript"),
            is_details_added=bool(data.get("isDetailsAdded", False)),
            triggered_at=from_iso(data.get("triggeredAt")) or utc_now(),
            created_at=from_iso(data.get("createdAt")),
            resolved_at=from_iso(data.get("resolvedAt")),
            resolution_summary=data.get("resolutionSummary"),
            notification_sent=bool(data.get("notificationSent", False)),
            notification_timestamp=from_iso(data.get("notificationTimestamp")),
        )
