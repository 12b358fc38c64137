"""
Firebase Realtime Database Location Store

Records live under ``live_locations/{userId}``. The Admin SDK is
blocking, so every call runs in a worker thread; listener events
arrive on SDK threads and are handed back to the event loop.

The Admin SDK has no server-side onDisconnect, so keys registered
with ``remove_on_disconnect`` are deleted when ``disconnect`` runs
(application shutdown or device agent teardown).
"""

import asyncio
from typing import Any, Callable, Optional

import firebase_admin
from firebase_admin import db

from safecampus.config.logging_config import get_logger
from safecampus.domain.models.live_location import LiveLocation
from safecampus.infrastructure.location.store import (
    AllLocationsCallback,
    LocationCallback,
    LocationStore,
    LocationSubscription,
)

logger = get_logger(__name__)

ROOT_PATH = "live_locations"


class FirebaseLocationStore(LocationStore):
    """Location store over firebase_admin.db."""

    def __init__(self, app: firebase_admin.App, root: str = ROOT_PATH) -> None:
        self._app = app
        self._root = root.strip("/")
        self._on_disconnect: set[str] = set()
        self._registrations: list[Any] = []

    def _ref(self, user_id: Optional[str] = None) -> db.Reference:
        path = self._root if user_id is None else f"{self._root}/{user_id}"
        return db.reference(path, app=self._app)

    async def set(self, user_id: str, location: LiveLocation) -> None:
        await asyncio.to_thread(self._ref(user_id).set, location.to_dict())

    async def update(self, user_id: str, fields: dict) -> None:
        await asyncio.to_thread(self._ref(user_id).update, fields)

    async def get(self, user_id: str) -> Optional[LiveLocation]:
        record = await asyncio.to_thread(self._ref(user_id).get)
        return _parse(record)

    async def get_all(self) -> dict[str, LiveLocation]:
        records = await asyncio.to_thread(self._ref().get)
        return _parse_all(records)

    async def remove(self, user_id: str) -> None:
        await asyncio.to_thread(self._ref(user_id).delete)

    async def subscribe(self, user_id: str, callback: LocationCallback) -> LocationSubscription:
        ref = self._ref(user_id)
        return await self._listen(ref, lambda: _parse(ref.get()), callback)

    async def subscribe_all(self, callback: AllLocationsCallback) -> LocationSubscription:
        ref = self._ref()
        return await self._listen(ref, lambda: _parse_all(ref.get()), callback)

    async def _listen(
        self,
        ref: db.Reference,
        read: Callable[[], Any],
        callback: Callable[[Any], None],
    ) -> LocationSubscription:
        loop = asyncio.get_running_loop()

        def deliver(payload: Any) -> None:
            try:
                callback(payload)
            except Exception as e:
                logger.error("Location subscriber failed", path=ref.path, error=str(e), exc_info=True)

        def on_event(event: db.Event) -> None:
            # Events carry partial patches; re-read the full value
            try:
                payload = read()
            except Exception as e:
                logger.warning("Location listener read failed", path=ref.path, error=str(e))
                return
            loop.call_soon_threadsafe(deliver, payload)

        registration = await asyncio.to_thread(ref.listen, on_event)
        self._registrations.append(registration)

        def cancel() -> None:
            registration.close()
            if registration in self._registrations:
                self._registrations.remove(registration)

        return LocationSubscription(cancel)

    def remove_on_disconnect(self, user_id: str) -> None:
        self._on_disconnect.add(user_id)

    async def disconnect(self) -> None:
        for registration in self._registrations:
            registration.close()
        self._registrations.clear()

        for user_id in sorted(self._on_disconnect):
            try:
                await self.remove(user_id)
            except Exception as e:
                logger.warning("Disconnect cleanup failed", user_id=user_id, error=str(e))
        self._on_disconnect.clear()


def _parse(record: Any) -> Optional[LiveLocation]:
    if not isinstance(record, dict) or "latitude" not in record or "longitude" not in record:
        return None
    return LiveLocation.from_dict(record)


def _parse_all(records: Any) -> dict[str, LiveLocation]:
    if not isinstance(records, dict):
        return {}
    locations = {}
    for user_id, record in records.items():
        location = _parse(record)
        if location is not None:
            locations[user_id] = location
    return locations
