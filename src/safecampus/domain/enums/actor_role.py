"""
Actor Role Enumeration

Closed set of roles that drive authorisation decisions. Every
permission check in the services layer is an exhaustive ``match``
over these members rather than a free-form string comparison.
"""

from enum import StrEnum


class ActorRole(StrEnum):
    """Role of an authenticated caller."""

    STUDENT = "student"
    """Campus resident. Owns SOS events and safe walks."""

    WARDEN = "warden"
    """Hostel warden. Sees alerts for their own hostel."""

    SECURITY = "security"
    """On-duty campus security. Recognises and resolves alerts."""

    ADMIN = "admin"
    """Administrator with full access."""

    @classmethod
    def parse(cls, value: str | None) -> "ActorRole":
        """
        Parse a role claim, defaulting unknown or missing values to STUDENT.

        Args:
            value: Raw role string (case-insensitive)

        Returns:
            Matching role, STUDENT for anything unrecognised
        """
        if not value:
            return cls.STUDENT
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.STUDENT

    @property
    def is_staff(self) -> bool:
        """Whether the role may observe every user's alerts and locations."""
        match self:
            case ActorRole.WARDEN | ActorRole.SECURITY | ActorRole.ADMIN:
                return True
            case ActorRole.STUDENT:
                return False
