"""
SOS Device Agent

Client-side orchestration around the lifecycle manager for the device
that raised the alert: caches the session token locally, keeps
background tracking running for the life of the episode, and recovers
both after a restart.

SAFETY_NOTE: Tracking failures never fail a trigger. An SOS without
live tracking is still an SOS.
"""

import asyncio
from typing import Optional

from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.errors import InvalidSOSTokenError, NotFoundError, SOSAlreadyActiveError
from safecampus.domain.models.actor import Actor
from safecampus.domain.models.geo import GeoPoint
from safecampus.domain.models.sos_event import SOSEvent
from safecampus.infrastructure.documents.store import Subscription
from safecampus.infrastructure.metrics import BEST_EFFORT_FAILURES_TOTAL, SOS_TRIGGERED_TOTAL
from safecampus.infrastructure.storage.key_value import ACTIVE_SOS_KEY, KeyValueStorage, sos_token_key
from safecampus.infrastructure.tracking.bridge import TrackingBridge, TrackingRequest
from safecampus.infrastructure.tracking.position_source import PositionSource
from safecampus.services.location.location_service import LocationService
from safecampus.services.sos.lifecycle_manager import SOSLifecycleManager, TriggerResult

logger = get_logger(__name__)


class SOSDeviceAgent:
    """
    Per-device SOS controller.

    Usage:
        agent = SOSDeviceAgent(manager, storage, bridge, locations, web_source)
        result = await agent.trigger(actor, GeoPoint(lat, lng))
        ...
        await agent.cancel()          # token cancel, works after logout
        await agent.recover()         # on app start
    """

    def __init__(
        self,
        manager: SOSLifecycleManager,
        storage: KeyValueStorage,
        bridge: TrackingBridge,
        locations: LocationService,
        web_source: Optional[PositionSource] = None,
    ) -> None:
        self._manager = manager
        self._storage = storage
        self._bridge = bridge
        self._locations = locations
        self._web_source = web_source
        self._subscription: Optional[Subscription] = None
        self._watched_sos_id: Optional[str] = None
        self._web_watch_user: Optional[str] = None
        self._background: set[asyncio.Task] = set()

    def active_sos_id(self) -> Optional[str]:
        return self._storage.get(ACTIVE_SOS_KEY)

    async def trigger(
        self,
        actor: Actor,
        location: GeoPoint,
        emergency_type: EmergencyType = EmergencyType.OTHER,
        trigger_method: TriggerMethod = TriggerMethod.MANUAL_GESTURE,
        auth_token: Optional[str] = None,
    ) -> TriggerResult:
        """
        Raise an SOS from this device, or resume the one already running.

        Raises:
            SOSAlreadyActiveError: Another episode is active and this
                device holds no valid token for it
        """
        try:
            result = await self._manager.trigger(
                actor,
                location,
                emergency_type=emergency_type,
                trigger_method=trigger_method,
            )
        except SOSAlreadyActiveError as e:
            resumed = await self._resume(e.sos_id, actor.id, auth_token)
            if resumed is None:
                raise
            return resumed

        self._remember(result.sos_id, result.sos_token)
        await self._start_tracking(
            TrackingRequest(
                sos_id=result.sos_id,
                sos_token=result.sos_token,
                user_id=actor.id,
                auth_token=auth_token,
            )
        )
        await self._watch_event(result.sos_id)
        return result

    async def _resume(
        self,
        sos_id: Optional[str],
        user_id: str,
        auth_token: Optional[str],
    ) -> Optional[TriggerResult]:
        if not sos_id:
            return None
        token = self._storage.get(sos_token_key(sos_id))
        if not token or not await self._manager.tokens.validate(sos_id, token):
            return None

        SOS_TRIGGERED_TOTAL.labels(result="resumed").inc()
        logger.info("Resuming active SOS on this device", sos_id=sos_id)
        self._storage.set(ACTIVE_SOS_KEY, sos_id)
        await self._start_tracking(
            TrackingRequest(sos_id=sos_id, sos_token=token, user_id=user_id, auth_token=auth_token)
        )
        await self._watch_event(sos_id)
        return TriggerResult(sos_id=sos_id, sos_token=token, resumed=True)

    async def cancel(self, sos_id: Optional[str] = None, actor: Optional[Actor] = None) -> SOSEvent:
        """
        Cancel this device's SOS.

        Authenticated when ``actor`` is given, otherwise with the
        locally cached token.

        Raises:
            NotFoundError: No SOS id given and none cached
            InvalidSOSTokenError: No cached token, or it was rejected
        """
        sos_id = sos_id or self.active_sos_id()
        if not sos_id:
            raise NotFoundError("Active SOS", "device")

        if actor is not None:
            event = await self._manager.cancel(sos_id, actor)
        else:
            token = self._storage.get(sos_token_key(sos_id))
            if not token:
                raise InvalidSOSTokenError()
            event = await self._manager.cancel_with_token(sos_id, token)

        await self._finish(sos_id)
        return event

    async def recover(self, auth_token: Optional[str] = None) -> Optional[str]:
        """
        Restore tracking after a process restart.

        Returns:
            The resumed SOS id, or None when nothing was active. Stale
            local entries are cleared.
        """
        sos_id = self.active_sos_id()
        if not sos_id:
            return None

        token = self._storage.get(sos_token_key(sos_id))
        if not token or not await self._manager.tokens.validate(sos_id, token):
            logger.info("Cached SOS is no longer active, clearing", sos_id=sos_id)
            self._forget(sos_id)
            return None

        session = await self._manager.get_session(sos_id)
        if session is None:
            self._forget(sos_id)
            return None

        await self._start_tracking(
            TrackingRequest(sos_id=sos_id, sos_token=token, user_id=session.user_id, auth_token=auth_token)
        )
        await self._watch_event(sos_id)
        logger.info("SOS recovered after restart", sos_id=sos_id)
        return sos_id

    # =========================================================================
    # TRACKING
    # =========================================================================

    async def _start_tracking(self, request: TrackingRequest) -> None:
        try:
            await self._bridge.start(request)
            return
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="tracking_bridge").inc()
            logger.warning("Background tracking unavailable", sos_id=request.sos_id, error=str(e))

        if self._web_source is None:
            return
        self._locations.start_web_watch(request.user_id, self._web_source, sos_id=request.sos_id)
        self._web_watch_user = request.user_id

    async def _stop_tracking(self) -> None:
        try:
            await self._bridge.stop()
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="tracking_bridge").inc()
            logger.warning("Stopping background tracking failed", error=str(e))
        if self._web_watch_user is not None:
            self._locations.stop_web_watch(self._web_watch_user)
            self._web_watch_user = None

    # =========================================================================
    # EVENT WATCH
    # =========================================================================

    async def _watch_event(self, sos_id: str) -> None:
        """Stop everything when the episode is closed from another device."""
        self._unwatch()
        self._watched_sos_id = sos_id
        try:
            self._subscription = await self._manager.subscribe_event(sos_id, self._on_event)
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="event_watch").inc()
            logger.warning("Could not watch SOS event", sos_id=sos_id, error=str(e))

    def _on_event(self, event: Optional[SOSEvent]) -> None:
        if event is None or not event.is_resolved:
            return
        if event.id != self._watched_sos_id:
            return
        logger.info("SOS closed remotely, stopping tracking", sos_id=event.id)
        task = asyncio.create_task(self._finish(event.id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _unwatch(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._subscription = None
        self._watched_sos_id = None

    # =========================================================================
    # LOCAL STATE
    # =========================================================================

    def _remember(self, sos_id: str, token: str) -> None:
        self._storage.set(sos_token_key(sos_id), token)
        self._storage.set(ACTIVE_SOS_KEY, sos_id)

    def _forget(self, sos_id: str) -> None:
        self._storage.delete(sos_token_key(sos_id))
        if self._storage.get(ACTIVE_SOS_KEY) == sos_id:
            self._storage.delete(ACTIVE_SOS_KEY)

    async def _finish(self, sos_id: str) -> None:
        if self._watched_sos_id == sos_id:
            self._unwatch()
        self._forget(sos_id)
        await self._stop_tracking()

    async def close(self) -> None:
        """Release subscriptions without touching the episode."""
        self._unwatch()
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
