"""
SOS Session Domain Model

Exactly one session exists per SOS event and shares its key. The
session holds the opaque token that lets a logged-out device (or the
background tracking service) prove it owns the episode.

SECURITY: ``token`` is a bearer secret. Never log it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from safecampus.domain.models.timestamps import from_iso, to_iso, utc_now


@dataclass
class SOSSession:
    """
    Token-bearing session paired 1:1 with an SOSEvent.

    Attributes:
        sos_id: Event id (also the session document key)
        user_id: Event owner
        token: Opaque secret, immutable after creation
        is_active: Flips true -> false exactly once, on resolve/cancel
        created_at: Issue time
        expires_at: Optional hard expiry
        stopped_at: When the session was deactivated
    """

    sos_id: str
    user_id: str
    token: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check the optional expiry."""
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Active and not expired."""
        return self.is_active and not self.is_expired(now)

    def to_dict(self) -> dict:
        return {
            "sosId": self.sos_id,
            "userId": self.user_id,
            "token": self.token,
            "isActive": self.is_active,
            "createdAt": to_iso(self.created_at),
            "expiresAt": to_iso(self.expires_at),
            "stoppedAt": to_iso(self.stopped_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SOSSession":
        return cls(
            sos_id=data["sosId"],
            user_id=data["userId"],
            token=data["token"],
            is_active=bool(data.get("isActive", False)),
            created_at=from_iso(data.get("createdAt")),
            expires_at=from_iso(data.get("expiresAt")),
            stopped_at=from_iso(data.get("stoppedAt")),
        )

    def __repr__(self) -> str:
        return f"<SOSSession(sos_id={self.sos_id}, user_id={self.user_id}, is_active={self.is_active})>"
