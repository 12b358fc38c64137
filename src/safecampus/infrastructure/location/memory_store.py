"""In-process location store for development and tests."""

from typing import Optional

from safecampus.config.logging_config import get_logger
from safecampus.domain.models.live_location import LiveLocation
from safecampus.infrastructure.location.store import (
    AllLocationsCallback,
    LocationCallback,
    LocationStore,
    LocationSubscription,
)

logger = get_logger(__name__)


class InMemoryLocationStore(LocationStore):
    """Dictionary-backed location store with synchronous listeners."""

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}
        self._user_listeners: dict[str, list[LocationCallback]] = {}
        self._all_listeners: list[AllLocationsCallback] = []
        self._on_disconnect: set[str] = set()

    async def set(self, user_id: str, location: LiveLocation) -> None:
        self._records[user_id] = location.to_dict()
        self._notify(user_id)

    async def update(self, user_id: str, fields: dict) -> None:
        record = dict(self._records.get(user_id, {}))
        record.update(fields)
        self._records[user_id] = record
        self._notify(user_id)

    async def get(self, user_id: str) -> Optional[LiveLocation]:
        return self._parse(self._records.get(user_id))

    async def get_all(self) -> dict[str, LiveLocation]:
        locations = {}
        for user_id, record in self._records.items():
            location = self._parse(record)
            if location is not None:
                locations[user_id] = location
        return locations

    async def remove(self, user_id: str) -> None:
        if self._records.pop(user_id, None) is not None:
            self._notify(user_id)

    async def subscribe(self, user_id: str, callback: LocationCallback) -> LocationSubscription:
        listeners = self._user_listeners.setdefault(user_id, [])
        listeners.append(callback)
        callback(self._parse(self._records.get(user_id)))

        def cancel() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return LocationSubscription(cancel)

    async def subscribe_all(self, callback: AllLocationsCallback) -> LocationSubscription:
        self._all_listeners.append(callback)
        callback(await self.get_all())

        def cancel() -> None:
            if callback in self._all_listeners:
                self._all_listeners.remove(callback)

        return LocationSubscription(cancel)

    def remove_on_disconnect(self, user_id: str) -> None:
        self._on_disconnect.add(user_id)

    async def disconnect(self) -> None:
        for user_id in sorted(self._on_disconnect):
            await self.remove(user_id)
        self._on_disconnect.clear()
        self._user_listeners.clear()
        self._all_listeners.clear()

    @staticmethod
    def _parse(record: Optional[dict]) -> Optional[LiveLocation]:
        # Partial records (update before first set) are not a location yet
        if not record or "latitude" not in record or "longitude" not in record:
            return None
        return LiveLocation.from_dict(record)

    def _notify(self, user_id: str) -> None:
        location = self._parse(self._records.get(user_id))
        for callback in list(self._user_listeners.get(user_id, [])):
            self._call(callback, location)
        if self._all_listeners:
            snapshot = {
                uid: parsed
                for uid, parsed in ((uid, self._parse(rec)) for uid, rec in self._records.items())
                if parsed is not None
            }
            for callback in list(self._all_listeners):
                self._call(callback, snapshot)

    @staticmethod
    def _call(callback, payload) -> None:
        try:
            callback(payload)
        except Exception as e:
            logger.error("Location subscriber failed", error=str(e), exc_info=True)
