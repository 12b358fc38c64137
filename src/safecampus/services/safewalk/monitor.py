"""
Safe Walk Monitor

State machine for monitored walks. A walk moves freely between the
non-terminal statuses; ``completed``, ``cancelled`` and ``sos`` are
final. Entering ``danger`` (or ``sos``) escalates: a new, separate
SOS event is raised through the lifecycle manager and the walk is
marked ``sos`` with a link to it. The walk document itself is never
converted or deleted.

Every mutation appends one timeline entry.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from safecampus.config.logging_config import get_logger
from safecampus.config.settings import SafeWalkSettings
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.enums.walk_status import MONITORED_WALK_STATUSES, WalkStatus
from safecampus.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SOSAlreadyActiveError,
)
from safecampus.domain.models.actor import Actor
from safecampus.domain.models.geo import GeoPoint, PositionFix
from safecampus.domain.models.safe_walk import (
    SafeWalkSession,
    WalkEntryKind,
    WalkPlace,
    WalkTimelineEntry,
)
from safecampus.domain.models.sos_event import AssignedActor
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.documents.collections import SAFE_WALKS
from safecampus.infrastructure.documents.field_ops import SERVER_TIMESTAMP, ArrayAppend, Filter
from safecampus.infrastructure.documents.store import DocumentStore, Subscription
from safecampus.infrastructure.metrics import (
    BEST_EFFORT_FAILURES_TOTAL,
    SAFE_WALK_ESCALATIONS,
    SAFE_WALK_FLAGS,
    SAFE_WALKS_TOTAL,
)
from safecampus.services.location.location_service import LocationService
from safecampus.services.safewalk.route_check import RouteCheck, check_off_route, is_delayed
from safecampus.services.sos.lifecycle_manager import SOSLifecycleManager, TriggerResult

logger = get_logger(__name__)

OFF_ROUTE_NOTE = "User appears to be moving away from destination"
DELAYED_NOTE = "Expected arrival time has passed"
ESCORT_REQUEST_NOTE = "Student requested a security escort"

UpdateFactory = Callable[[SafeWalkSession], dict]


@dataclass(frozen=True)
class WalkEscalation:
    """Walk marked ``sos`` and the SOS raised for it."""

    walk: SafeWalkSession
    trigger: TriggerResult


@dataclass(frozen=True)
class PositionReport:
    """Outcome of recording one fix on a walk."""

    walk: SafeWalkSession
    route: RouteCheck
    flagged_off_route: bool = False
    flagged_delayed: bool = False


def can_monitor(role: ActorRole) -> bool:
    match role:
        case ActorRole.SECURITY | ActorRole.WARDEN | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT:
            return False


def can_assign_escort(role: ActorRole) -> bool:
    match role:
        case ActorRole.SECURITY | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT | ActorRole.WARDEN:
            return False


class SafeWalkMonitor:
    """
    Safe walk operations.

    Usage:
        monitor = SafeWalkMonitor(store, manager, locations, settings.safewalk)
        walk = await monitor.start(actor, start, destination, expected_duration=15)
        report = await monitor.record_position(walk.id, fix)
        await monitor.complete(walk.id, actor)
    """

    def __init__(
        self,
        store: DocumentStore,
        manager: SOSLifecycleManager,
        locations: LocationService,
        settings: Optional[SafeWalkSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or SafeWalkSettings()
        self._store = store
        self._manager = manager
        self._locations = locations
        self._threshold = settings.off_route_threshold_meters
        self._clock = clock

    # =========================================================================
    # START / FINISH
    # =========================================================================

    async def start(
        self,
        actor: Actor,
        start_location: WalkPlace,
        destination: WalkPlace,
        expected_duration: int,
        note: Optional[str] = None,
    ) -> SafeWalkSession:
        """
        Begin a monitored walk.

        Args:
            actor: Walking student
            start_location: Where the walk begins
            destination: Where it should end
            expected_duration: Minutes the walk should take
            note: Free text shown to responders
        """
        if expected_duration <= 0:
            raise ValueError("expected_duration must be a positive number of minutes")

        now = self._clock()
        walk = SafeWalkSession(
            id=uuid4().hex,
            user_id=actor.id,
            user_name=actor.name,
            hostel_id=actor.hostel_id,
            start_location=start_location,
            destination=destination,
            expected_duration=expected_duration,
            note=note,
            start_time=now,
            updated_at=now,
            timeline=[
                WalkTimelineEntry(
                    time=now,
                    kind=WalkEntryKind.STATUS,
                    details=f"Walk started to {destination.name or 'destination'}",
                    by=actor.id,
                )
            ],
        )
        await self._store.create(SAFE_WALKS, walk.id, walk.to_dict())
        SAFE_WALKS_TOTAL.labels(outcome="started").inc()
        logger.info(
            "Safe walk started",
            walk_id=walk.id,
            user_id=actor.id,
            expected_duration=expected_duration,
        )

        try:
            await self._locations.publish(
                actor.id,
                PositionFix(latitude=start_location.lat, longitude=start_location.lng, speed=0.0),
            )
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="walk_location_write").inc()
            logger.warning("Initial walk location write failed", walk_id=walk.id, error=str(e))
        return walk

    async def complete(self, walk_id: str, actor: Actor, note: Optional[str] = None) -> SafeWalkSession:
        return await self.update_status(walk_id, WalkStatus.COMPLETED, actor, note=note or "Arrived safely")

    async def cancel(self, walk_id: str, actor: Actor, note: Optional[str] = None) -> SafeWalkSession:
        return await self.update_status(walk_id, WalkStatus.CANCELLED, actor, note=note or "Walk cancelled")

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_status(
        self,
        walk_id: str,
        status: WalkStatus,
        actor: Actor,
        note: Optional[str] = None,
    ) -> SafeWalkSession:
        """
        Move a walk to a new status.

        ``danger`` and ``sos`` escalate into an SOS event.

        Raises:
            InvalidTransitionError: The walk already reached a terminal status
            SOSAlreadyActiveError: Escalation found an active SOS (walk stays ``danger``)
        """
        if status.escalates:
            escalation = await self.escalate(walk_id, actor)
            return escalation.walk

        walk = await self.get_walk(walk_id)
        self._require_owner_or_monitor(actor, walk)

        def updates(current: SafeWalkSession) -> dict:
            return {
                "status": status.value,
                "timeline": ArrayAppend(
                    self._entry(WalkEntryKind.STATUS, note or f"Status changed to {status.value}", actor.id)
                ),
            }

        updated = await self._mutate(walk_id, updates)
        if status.is_terminal:
            SAFE_WALKS_TOTAL.labels(outcome=status.value).inc()
        logger.info("Safe walk status changed", walk_id=walk_id, status=status.value, actor_id=actor.id)
        return updated

    async def escalate(
        self,
        walk_id: str,
        actor: Actor,
        location: Optional[GeoPoint] = None,
    ) -> WalkEscalation:
        """
        Raise an SOS for the walking student.

        Location preference: ``location``, then the live location
        store, then the walk's start location. If the student already
        has an active SOS the walk is left in ``danger`` and the error
        propagates.
        """
        walk = await self.get_walk(walk_id)
        self._require_owner_or_monitor(actor, walk)

        walk = await self._mutate(walk_id, lambda current: {
            "status": WalkStatus.DANGER.value,
            "timeline": ArrayAppend(
                self._entry(WalkEntryKind.STATUS, "Walk escalated to emergency", actor.id)
            ),
        })

        point = location or await self._last_known_point(walk)
        student = Actor(
            id=walk.user_id,
            name=walk.user_name,
            role=ActorRole.STUDENT,
            hostel_id=walk.hostel_id,
        )
        try:
            trigger = await self._manager.trigger(
                student,
                point,
                emergency_type=EmergencyType.OTHER,
                trigger_method=TriggerMethod.BUTTON,
            )
        except SOSAlreadyActiveError:
            SAFE_WALK_ESCALATIONS.labels(result="already_active").inc()
            logger.warning("Walk escalation found an active SOS", walk_id=walk_id, user_id=walk.user_id)
            raise

        walk = await self._mutate(
            walk_id,
            lambda current: {
                "status": WalkStatus.SOS.value,
                "linkedSosId": trigger.sos_id,
                "timeline": ArrayAppend(
                    self._entry(WalkEntryKind.STATUS, f"SOS raised: {trigger.sos_id}", actor.id)
                ),
            },
            allow_from=(WalkStatus.DANGER,),
        )
        SAFE_WALK_ESCALATIONS.labels(result="escalated").inc()
        SAFE_WALKS_TOTAL.labels(outcome=WalkStatus.SOS.value).inc()
        logger.warning("Safe walk escalated to SOS", walk_id=walk_id, sos_id=trigger.sos_id)
        return WalkEscalation(walk=walk, trigger=trigger)

    async def _last_known_point(self, walk: SafeWalkSession) -> GeoPoint:
        try:
            live = await self._locations.get(walk.user_id)
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="walk_location_read").inc()
            logger.warning("Live location lookup failed", walk_id=walk.id, error=str(e))
            live = None
        if live is not None:
            return live.point
        return walk.start_location.point

    # =========================================================================
    # POSITION MONITORING
    # =========================================================================

    async def record_position(
        self,
        walk_id: str,
        fix: PositionFix,
        actor: Optional[Actor] = None,
    ) -> PositionReport:
        """
        Record a fix, flagging ``off-route`` and ``delayed`` automatically.

        Off-route wins over delayed when both apply to the same fix.
        Only active or delayed walks are flagged; paused, escort and
        danger states are kept. The distance is recorded regardless.
        """
        walk = await self.get_walk(walk_id)
        if actor is not None and actor.id != walk.user_id:
            raise PermissionDeniedError("Only the walking student reports positions")
        if walk.status.is_terminal:
            raise InvalidTransitionError(f"Walk is {walk.status.value}")

        try:
            await self._locations.publish(walk.user_id, fix)
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="walk_location_write").inc()
            logger.warning("Walk location write failed", walk_id=walk_id, error=str(e))

        route = check_off_route(fix.point, walk.destination.point, walk.last_distance, self._threshold)
        flags: dict[str, bool] = {"off_route": False, "delayed": False}

        def updates(current: SafeWalkSession) -> dict:
            changes: dict = {"lastDistance": route.current_distance}
            if route.is_off_route and current.status.accepts_route_flags:
                changes["status"] = WalkStatus.OFF_ROUTE.value
                changes["timeline"] = ArrayAppend(
                    self._entry(WalkEntryKind.STATUS, OFF_ROUTE_NOTE, "system")
                )
                flags["off_route"] = True
            elif current.status is WalkStatus.ACTIVE and is_delayed(
                current.start_time, current.expected_duration, self._clock()
            ):
                changes["status"] = WalkStatus.DELAYED.value
                changes["timeline"] = ArrayAppend(
                    self._entry(WalkEntryKind.STATUS, DELAYED_NOTE, "system")
                )
                flags["delayed"] = True
            return changes

        walk = await self._mutate(walk_id, updates)
        if flags["off_route"]:
            SAFE_WALK_FLAGS.labels(flag=WalkStatus.OFF_ROUTE.value).inc()
            logger.warning("Safe walk off route", walk_id=walk_id, distance=round(route.current_distance, 1))
        if flags["delayed"]:
            SAFE_WALK_FLAGS.labels(flag=WalkStatus.DELAYED.value).inc()
            logger.warning("Safe walk delayed", walk_id=walk_id)

        return PositionReport(
            walk=walk,
            route=route,
            flagged_off_route=flags["off_route"],
            flagged_delayed=flags["delayed"],
        )

    # =========================================================================
    # ESCORTS & MESSAGES
    # =========================================================================

    async def request_escort(self, walk_id: str, actor: Actor) -> SafeWalkSession:
        walk = await self.get_walk(walk_id)
        if actor.id != walk.user_id:
            raise PermissionDeniedError("Only the walking student can request an escort")

        updated = await self._mutate(walk_id, lambda current: {
            "escortRequested": True,
            "status": WalkStatus.ESCORT_REQUESTED.value,
            "timeline": ArrayAppend(
                self._entry(WalkEntryKind.STATUS, ESCORT_REQUEST_NOTE, actor.id)
            ),
        })
        logger.info("Escort requested", walk_id=walk_id)
        return updated

    async def assign_escort(
        self,
        walk_id: str,
        actor: Actor,
        escort_id: str,
        escort_name: str,
    ) -> SafeWalkSession:
        """Security assigns a named escort to the walk."""
        if not can_assign_escort(actor.role):
            raise PermissionDeniedError("Only security can assign escorts")

        escort = AssignedActor(id=escort_id, name=escort_name, role=ActorRole.SECURITY.value)
        updated = await self._mutate(walk_id, lambda current: {
            "assignedEscort": escort.to_dict(),
            "timeline": ArrayAppend(
                self._entry(WalkEntryKind.STATUS, f"Escort {escort_name} assigned by security", actor.id)
            ),
        })
        logger.info("Escort assigned", walk_id=walk_id, escort_id=escort_id)
        return updated

    async def send_message(self, walk_id: str, actor: Actor, message: str) -> SafeWalkSession:
        if not can_monitor(actor.role):
            raise PermissionDeniedError("Only responders can message a walking student")
        if not message.strip():
            raise ValueError("message must not be empty")

        sender = actor.name or actor.role.value
        return await self._mutate(
            walk_id,
            lambda current: {
                "timeline": ArrayAppend(
                    self._entry(WalkEntryKind.MESSAGE, f"Message from {sender}: {message}", actor.id)
                ),
            },
            allow_terminal=True,
        )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_walk(self, walk_id: str, actor: Optional[Actor] = None) -> SafeWalkSession:
        data = await self._store.get(SAFE_WALKS, walk_id)
        if data is None:
            raise NotFoundError("Safe walk", walk_id)
        walk = SafeWalkSession.from_dict(data)
        if actor is not None:
            self._require_owner_or_monitor(actor, walk)
        return walk

    async def find_active_walk(self, user_id: str) -> Optional[SafeWalkSession]:
        """The user's most recent non-terminal walk."""
        documents = await self._store.query(
            SAFE_WALKS,
            [
                Filter("userId", "==", user_id),
                Filter("status", "in", [status.value for status in MONITORED_WALK_STATUSES]),
            ],
            order_by="startTime",
            descending=True,
            limit=1,
        )
        return SafeWalkSession.from_dict(documents[0]) if documents else None

    async def list_active(self, hostel_id: Optional[str] = None) -> list[SafeWalkSession]:
        documents = await self._store.query(
            SAFE_WALKS,
            self._active_filters(hostel_id),
            order_by="startTime",
            descending=True,
        )
        return [SafeWalkSession.from_dict(doc) for doc in documents]

    async def subscribe_active(
        self,
        callback: Callable[[list[SafeWalkSession]], None],
        hostel_id: Optional[str] = None,
    ) -> Subscription:
        return await self._store.subscribe(
            SAFE_WALKS,
            lambda documents: callback([SafeWalkSession.from_dict(doc) for doc in documents]),
            filters=self._active_filters(hostel_id),
            order_by="startTime",
            descending=True,
        )

    @staticmethod
    def _active_filters(hostel_id: Optional[str]) -> list[Filter]:
        filters = [Filter("status", "in", [status.value for status in MONITORED_WALK_STATUSES])]
        if hostel_id is not None:
            filters.append(Filter("hostelId", "==", hostel_id))
        return filters

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _entry(self, kind: WalkEntryKind, details: str, by: str) -> dict:
        return WalkTimelineEntry(time=self._clock(), kind=kind, details=details, by=by).to_dict()

    @staticmethod
    def _require_owner_or_monitor(actor: Actor, walk: SafeWalkSession) -> None:
        if actor.id == walk.user_id or can_monitor(actor.role):
            return
        raise PermissionDeniedError("Not permitted to act on this walk")

    async def _mutate(
        self,
        walk_id: str,
        factory: UpdateFactory,
        allow_terminal: bool = False,
        allow_from: Optional[tuple[WalkStatus, ...]] = None,
    ) -> SafeWalkSession:
        """
        Read-check-write one walk in a transaction.

        Terminal walks reject every mutation unless ``allow_terminal``;
        ``allow_from`` narrows the accepted current statuses further.
        """
        async with self._store.transaction() as tx:
            data = await tx.get(SAFE_WALKS, walk_id)
            if data is None:
                raise NotFoundError("Safe walk", walk_id)
            current = SafeWalkSession.from_dict(data)
            if current.status.is_terminal and not allow_terminal:
                raise InvalidTransitionError(f"Walk is already {current.status.value}")
            if allow_from is not None and current.status not in allow_from:
                raise InvalidTransitionError(
                    f"Walk moved to {current.status.value} during escalation"
                )
            updates = factory(current)
            updates["updatedAt"] = SERVER_TIMESTAMP
            tx.update(SAFE_WALKS, walk_id, updates)

        return await self.get_walk(walk_id)
