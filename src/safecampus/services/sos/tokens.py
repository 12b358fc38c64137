"""
SOS Session Token Service

Generates, persists and validates the per-episode secret that lets a
logged-out device (or the background tracker) act on its own SOS.

SECURITY:
- Tokens carry ``token_bytes`` of CSPRNG entropy (256 bits by default).
- Comparison is constant-time.
- A token dies with its event: once the event is resolved the token
  is refused even if the session was never deactivated.
- Every failure mode maps to the same InvalidSOSTokenError, so the
  caller cannot tell an unknown SOS id from a wrong token.
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from safecampus.config.logging_config import get_logger
from safecampus.domain.errors import InvalidSOSTokenError
from safecampus.domain.models.sos_session import SOSSession
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.documents.collections import SOS_EVENTS, SOS_SESSIONS
from safecampus.infrastructure.documents.field_ops import SERVER_TIMESTAMP
from safecampus.infrastructure.documents.store import DocumentStore
from safecampus.infrastructure.metrics import BEST_EFFORT_FAILURES_TOTAL, TOKEN_VALIDATIONS_TOTAL

logger = get_logger(__name__)


class SessionTokenService:
    """
    Issue and validate SOS session tokens.

    Usage:
        tokens = SessionTokenService(store, ttl=timedelta(hours=48))
        session = tokens.build_session(sos_id, user_id)
        ok = await tokens.validate(sos_id, presented)
    """

    def __init__(
        self,
        store: DocumentStore,
        ttl: Optional[timedelta] = timedelta(hours=48),
        token_bytes: int = 32,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            store: Document store holding ``sos_sessions``
            ttl: Session lifetime; None disables expiry
            token_bytes: Random bytes per token (minimum 16)
            clock: Time source (injectable for tests)
        """
        if token_bytes < 16:
            raise ValueError("SOS tokens need at least 128 bits of entropy")
        self._store = store
        self._ttl = ttl
        self._token_bytes = token_bytes
        self._clock = clock

    def generate(self) -> str:
        """Return a new URL-safe token."""
        return secrets.token_urlsafe(self._token_bytes)

    def build_session(self, sos_id: str, user_id: str) -> SOSSession:
        """
        Create an active session with a fresh token (not persisted).

        The lifecycle manager writes it in the same transaction as the
        event it belongs to.
        """
        now = self._clock()
        return SOSSession(
            sos_id=sos_id,
            user_id=user_id,
            token=self.generate(),
            is_active=True,
            created_at=now,
            expires_at=now + self._ttl if self._ttl is not None else None,
        )

    async def issue(self, sos_id: str, user_id: str) -> SOSSession:
        """Create and persist a session."""
        session = self.build_session(sos_id, user_id)
        await self._store.create(SOS_SESSIONS, sos_id, session.to_dict())
        return session

    def check(self, session: Optional[SOSSession], presented: Optional[str]) -> str:
        """
        Classify a presented token against a stored session.

        Returns:
            One of: valid, missing, inactive, expired, mismatch
        """
        if session is None:
            return "missing"
        # Compare first so timing does not depend on session state
        matches = hmac.compare_digest(
            session.token.encode("utf-8"),
            (presented or "").encode("utf-8"),
        )
        if not session.is_active:
            return "inactive"
        if session.is_expired(self._clock()):
            return "expired"
        if not matches:
            return "mismatch"
        return "valid"

    async def _load(self, sos_id: str) -> Optional[SOSSession]:
        data = await self._store.get(SOS_SESSIONS, sos_id)
        return SOSSession.from_dict(data) if data else None

    async def _event_resolved(self, sos_id: str) -> bool:
        data = await self._store.get(SOS_EVENTS, sos_id)
        return bool(data and data.get("status", {}).get("resolved", False))

    async def deactivate(self, sos_id: str) -> bool:
        """
        Mark a session inactive (best-effort).

        Returns:
            False when the write failed; the failure is logged and counted
        """
        try:
            await self._store.update(SOS_SESSIONS, sos_id, {
                "isActive": False,
                "stoppedAt": SERVER_TIMESTAMP,
            })
            return True
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="session_deactivate").inc()
            logger.error("SOS session deactivation failed", sos_id=sos_id, error=str(e))
            return False

    async def _evaluate(self, sos_id: str, presented: Optional[str]) -> tuple[str, Optional[SOSSession]]:
        session = await self._load(sos_id)
        result = self.check(session, presented)
        if result == "valid" and await self._event_resolved(sos_id):
            # Session outlived its event after a failed deactivation
            result = "resolved"
            await self.deactivate(sos_id)
        TOKEN_VALIDATIONS_TOTAL.labels(result=result).inc()
        if result != "valid":
            logger.info("SOS token rejected", sos_id=sos_id, reason=result)
        return result, session

    async def validate(self, sos_id: str, presented: Optional[str]) -> bool:
        """
        Check a token.

        True only when the session exists, is active, is not expired,
        the token matches and the event is not resolved.
        """
        result, _ = await self._evaluate(sos_id, presented)
        return result == "valid"

    async def require_valid(self, sos_id: str, presented: Optional[str]) -> SOSSession:
        """
        Return the session for a valid token.

        Raises:
            InvalidSOSTokenError: For every failure mode
        """
        result, session = await self._evaluate(sos_id, presented)
        if result != "valid":
            raise InvalidSOSTokenError()
        return session
