"""
User Directory

Read access to the ``users`` collection: profile enrichment for SOS
events and recipient lookup for notifications. Profiles are
provisioned elsewhere; the only write here is device push token
registration.
"""

from typing import Optional

from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.models.actor import UserProfile
from safecampus.infrastructure.documents.collections import USERS
from safecampus.infrastructure.documents.field_ops import Filter
from safecampus.infrastructure.documents.store import DocumentStore

logger = get_logger(__name__)


class UserDirectory:
    """Profile lookups over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        data = await self._store.get(USERS, uid)
        return UserProfile.from_dict(uid, data) if data else None

    async def save_profile(self, profile: UserProfile) -> None:
        await self._store.set(USERS, profile.uid, profile.to_dict(), merge=True)

    async def register_push_token(self, uid: str, push_token: str) -> None:
        """Store the device registration token used for alerts."""
        await self._store.set(USERS, uid, {"uid": uid, "fcmToken": push_token}, merge=True)
        logger.info("Push token registered", user_id=uid)

    async def list_by_role(
        self,
        role: ActorRole,
        hostel_id: Optional[str] = None,
    ) -> list[UserProfile]:
        """
        Profiles with a given role.

        Args:
            role: Role to match
            hostel_id: Restrict to one hostel when given
        """
        filters = [Filter("role", "==", role.value)]
        if hostel_id is not None:
            filters.append(Filter("hostelId", "==", hostel_id))
        documents = await self._store.query(USERS, filters)
        return [UserProfile.from_dict(doc.get("uid", ""), doc) for doc in documents]
