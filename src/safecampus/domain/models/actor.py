"""
Actor and User Profile Domain Models

An Actor is the authenticated caller of an operation. A UserProfile
is the stored directory record used to enrich SOS events and to find
notification recipients.

PRIVACY: Student display names are pseudonymised to a username on
SOS events; the real name stays in the directory.
"""

from dataclasses import dataclass
from typing import Optional

from safecampus.domain.enums.actor_role import ActorRole


@dataclass(frozen=True)
class Actor:
    """
    Authenticated caller.

    Attributes:
        id: Identity provider user id
        name: Display name
        role: Closed role variant
        hostel_id: Hostel the actor belongs to (students, wardens)
    """

    id: str
    name: str = ""
    role: ActorRole = ActorRole.STUDENT
    hostel_id: Optional[str] = None


@dataclass
class UserProfile:
    """
    Directory record stored in the ``users`` collection.

    Attributes:
        uid: User id (document key)
        name: Real name
        username: Pseudonymous handle shown on alerts
        phone: Contact phone number
        role: Actor role
        hostel_id: Hostel identifier
        room_number: Room within the hostel
        push_token: Device push registration token
    """

    uid: str
    name: str = ""
    username: Optional[str] = None
    phone: str = ""
    role: ActorRole = ActorRole.STUDENT
    hostel_id: Optional[str] = None
    room_number: Optional[str] = None
    push_token: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Name shown to responders; students are shown by username."""
        match self.role:
            case ActorRole.STUDENT:
                return self.username or self.name or "Unknown Student"
            case ActorRole.WARDEN | ActorRole.SECURITY | ActorRole.ADMIN:
                return self.name or self.username or "Unknown"

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "name": self.name,
            "username": self.username,
            "phoneNumber": self.phone,
            "role": self.role.value,
            "hostelId": self.hostel_id,
            "roomNo": self.room_number,
            "fcmToken": self.push_token,
        }

    @classmethod
    def from_dict(cls, uid: str, data: dict) -> "UserProfile":
        return cls(
            uid=uid,
            name=data.get("name") or "",
            username=data.get("username"),
            phone=data.get("phoneNumber") or data.get("phone") or "",
            role=ActorRole.parse(data.get("role")),
            hostel_id=data.get("hostelId"),
            room_number=data.get("roomNo") or data.get("roomNumber"),
            push_token=data.get("fcmToken"),
        )
