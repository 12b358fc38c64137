"""
Background Tracking Bridge Port

Native OS-level service that keeps reporting location after the app
is backgrounded or the user logs out. The SOS device agent starts it
with the episode token, stops it on resolution and queries it on
restart. Failures are always treated as non-fatal by callers.

SECURITY: TrackingRequest carries the SOS token and the user's ID
token. Neither may be logged.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from safecampus.domain.errors import TrackingBridgeError


@dataclass(frozen=True)
class TrackingRequest:
    """Parameters handed to the native tracking service."""

    sos_id: str
    sos_token: str
    user_id: str
    auth_token: Optional[str] = None

    def __repr__(self) -> str:
        return f"TrackingRequest(sos_id={self.sos_id!r}, user_id={self.user_id!r})"


class TrackingBridge(ABC):
    """Start/stop/query interface of the native tracking service."""

    @abstractmethod
    async def start(self, request: TrackingRequest) -> None:
        """
        Start background tracking.

        Raises:
            TrackingBridgeError: Service could not be started
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop background tracking (no-op when not running)."""
        ...

    @abstractmethod
    async def is_running(self) -> bool:
        ...


class UnavailableTrackingBridge(TrackingBridge):
    """
    Bridge for platforms without a native service (web).

    ``start`` always fails so the caller falls back to the web
    geolocation watch.
    """

    async def start(self, request: TrackingRequest) -> None:
        raise TrackingBridgeError("Native tracking is not available on this platform")

    async def stop(self) -> None:
        return None

    async def is_running(self) -> bool:
        return False
