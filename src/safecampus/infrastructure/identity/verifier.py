"""
Identity Verification

Turns a bearer credential into an Actor. The production verifier
checks Firebase ID tokens and reads the ``role`` and ``hostelId``
custom claims.

SECURITY: Raw ID tokens are never logged.
"""

import asyncio
from abc import ABC, abstractmethod

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.models.actor import Actor

logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Credential missing, malformed, expired or revoked."""


class IdentityVerifier(ABC):
    """Abstract bearer credential verifier."""

    @abstractmethod
    async def verify(self, credential: str) -> Actor:
        """
        Verify a credential.

        Raises:
            AuthenticationError: Credential rejected
        """
        ...


class FirebaseIdentityVerifier(IdentityVerifier):
    """Firebase Auth ID token verifier."""

    def __init__(self, app: firebase_admin.App, check_revoked: bool = False) -> None:
        self._app = app
        self._check_revoked = check_revoked

    async def verify(self, credential: str) -> Actor:
        try:
            decoded = await asyncio.to_thread(
                firebase_auth.verify_id_token,
                credential,
                self._app,
                self._check_revoked,
            )
        except (ValueError, firebase_auth.InvalidIdTokenError, firebase_exceptions.FirebaseError) as e:
            logger.info("ID token rejected", reason=type(e).__name__)
            raise AuthenticationError("Invalid authentication credentials") from e

        return Actor(
            id=decoded["uid"],
            name=decoded.get("name") or "",
            role=ActorRole.parse(decoded.get("role")),
            hostel_id=decoded.get("hostelId"),
        )
