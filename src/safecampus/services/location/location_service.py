"""
Location Service

Glue between device position fixes and the realtime location store:
publishing, freshness classification, per-user and campus-wide
watches, and the web geolocation watch used when native background
tracking is unavailable.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from safecampus.config.logging_config import get_logger
from safecampus.config.settings import LocationSettings
from safecampus.domain.models.geo import PositionFix
from safecampus.domain.models.live_location import LiveLocation, LocationStatus
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.location.store import LocationStore, LocationSubscription
from safecampus.infrastructure.metrics import BEST_EFFORT_FAILURES_TOTAL
from safecampus.infrastructure.tracking.position_source import PositionSource

logger = get_logger(__name__)


class LocationService:
    """
    Live location operations.

    Usage:
        locations = LocationService(store, settings.location)
        await locations.publish(user_id, fix, sos_id=sos_id)
        status = locations.status_of(await locations.get(user_id))
    """

    def __init__(
        self,
        store: LocationStore,
        settings: Optional[LocationSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or LocationSettings()
        self._store = store
        self._active_within = timedelta(seconds=settings.active_seconds)
        self._stale_within = timedelta(seconds=settings.stale_seconds)
        self._clock = clock
        self._web_watches: dict[str, asyncio.Task] = {}

    @property
    def store(self) -> LocationStore:
        return self._store

    async def publish(self, user_id: str, fix: PositionFix, sos_id: Optional[str] = None) -> LiveLocation:
        """Overwrite the user's live location with a new fix."""
        location = LiveLocation.from_fix(fix, sos_id=sos_id, now=self._clock())
        await self._store.set(user_id, location)
        return location

    async def get(self, user_id: str) -> Optional[LiveLocation]:
        return await self._store.get(user_id)

    def status_of(self, location: Optional[LiveLocation]) -> LocationStatus:
        """Freshness of a record; a missing record is OFFLINE."""
        if location is None:
            return LocationStatus.OFFLINE
        return location.status(
            now=self._clock(),
            active_within=self._active_within,
            stale_within=self._stale_within,
        )

    async def watch(
        self,
        user_id: str,
        callback: Callable[[Optional[LiveLocation]], None],
    ) -> LocationSubscription:
        return await self._store.subscribe(user_id, callback)

    async def watch_all(
        self,
        callback: Callable[[dict[str, LiveLocation]], None],
    ) -> LocationSubscription:
        return await self._store.subscribe_all(callback)

    def start_web_watch(
        self,
        user_id: str,
        source: PositionSource,
        sos_id: Optional[str] = None,
    ) -> None:
        """
        Forward every fix from ``source`` to the store until stopped.

        Writes are fire-and-forget: a failed write is logged and the
        next fix supersedes it. The key is registered for removal on
        disconnect.
        """
        self.stop_web_watch(user_id)
        self._store.remove_on_disconnect(user_id)
        task = asyncio.create_task(
            self._forward(user_id, source, sos_id),
            name=f"web-watch-{user_id}",
        )
        self._web_watches[user_id] = task
        logger.info("Web location watch started", user_id=user_id, sos_id=sos_id)

    def stop_web_watch(self, user_id: str) -> bool:
        task = self._web_watches.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info("Web location watch stopped", user_id=user_id)
        return True

    def is_watching(self, user_id: str) -> bool:
        task = self._web_watches.get(user_id)
        return task is not None and not task.done()

    async def _forward(self, user_id: str, source: PositionSource, sos_id: Optional[str]) -> None:
        async for fix in source.fixes():
            try:
                await self.publish(user_id, fix, sos_id=sos_id)
            except Exception as e:
                BEST_EFFORT_FAILURES_TOTAL.labels(component="web_watch_write").inc()
                logger.warning("Web watch write failed", user_id=user_id, error=str(e))

    async def close(self) -> None:
        for user_id in list(self._web_watches):
            self.stop_web_watch(user_id)
        await self._store.disconnect()
