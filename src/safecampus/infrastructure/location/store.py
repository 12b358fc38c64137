"""
Location Store Port

Realtime key-value store of ``userId -> LiveLocation``. Writes are
last-write-wins; readers subscribe per user or to the whole tree.

Remove-on-disconnect: keys registered with ``remove_on_disconnect``
are deleted when the writer's connection closes (``disconnect``).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from safecampus.domain.models.live_location import LiveLocation

LocationCallback = Callable[[Optional[LiveLocation]], None]
AllLocationsCallback = Callable[[dict[str, LiveLocation]], None]


@dataclass
class LocationSubscription:
    """Handle for a live location listener."""

    _cancel: Optional[Callable[[], None]] = None

    def unsubscribe(self) -> None:
        if self._cancel is not None:
            self._cancel()
            self._cancel = None


class LocationStore(ABC):
    """Abstract realtime location store."""

    @abstractmethod
    async def set(self, user_id: str, location: LiveLocation) -> None:
        """Overwrite the user's record."""
        ...

    @abstractmethod
    async def update(self, user_id: str, fields: dict) -> None:
        """Merge raw fields into the user's record."""
        ...

    @abstractmethod
    async def get(self, user_id: str) -> Optional[LiveLocation]:
        ...

    @abstractmethod
    async def get_all(self) -> dict[str, LiveLocation]:
        ...

    @abstractmethod
    async def remove(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def subscribe(self, user_id: str, callback: LocationCallback) -> LocationSubscription:
        """Listen to one user; called with the current value first."""
        ...

    @abstractmethod
    async def subscribe_all(self, callback: AllLocationsCallback) -> LocationSubscription:
        """Listen to every user; called with the full map on each change."""
        ...

    @abstractmethod
    def remove_on_disconnect(self, user_id: str) -> None:
        """Register a key for deletion when this connection closes."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection, removing registered keys and listeners."""
        ...
