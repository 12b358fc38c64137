"""
SOS Lifecycle Manager

Server-authoritative state machine for SOS events: trigger, detail
enrichment, recognition, warden acknowledgement, resolution and
cancellation (authenticated or by token).

SAFETY-CRITICAL invariants:
- At most one unresolved SOS per user. Enforced twice: a query
  precondition, and a ``sos_active_users/{userId}`` pointer created in
  the same transaction as the event and its session.
- ``status.recognised`` and ``status.resolved`` only move false -> true.
- The timeline is append-only; every mutation appends exactly one entry.
- Resolve (and authenticated cancel) updates the event, deactivates
  the session and clears the pointer in one transaction.

KNOWN GAP: recognise is a single unguarded document update. Two
concurrent recognitions both succeed and the last one wins the
assignment. This is intentional and must not be "fixed" with locking
without revisiting the responder workflow.

Store outages surface as StoreUnavailableError; nothing here retries.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    SOSAlreadyActiveError,
)
from safecampus.domain.events import SOSCreated
from safecampus.domain.models.actor import Actor, UserProfile
from safecampus.domain.models.geo import GeoPoint, PositionFix
from safecampus.domain.models.sos_event import (
    ACTION_CANCELLED,
    ACTION_CANCELLED_WITH_TOKEN,
    ACTION_DETAILS_ADDED,
    ACTION_RECOGNISED,
    ACTION_RESOLVED,
    ACTION_TRIGGERED,
    ACTION_WARDEN_ACKNOWLEDGED,
    CANCEL_SUMMARY,
    AssignedActor,
    SOSEvent,
    TimelineEntry,
)
from safecampus.domain.models.sos_session import SOSSession
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.documents.collections import (
    SOS_ACTIVE_USERS,
    SOS_EVENTS,
    SOS_SESSIONS,
)
from safecampus.infrastructure.documents.field_ops import SERVER_TIMESTAMP, ArrayAppend, Filter
from safecampus.infrastructure.documents.store import (
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Subscription,
)
from safecampus.infrastructure.metrics import (
    ACTIVE_SOS,
    BEST_EFFORT_FAILURES_TOTAL,
    SOS_TIME_TO_RECOGNISE,
    SOS_TRIGGERED_TOTAL,
    track_sos_resolution,
)
from safecampus.services.directory import UserDirectory
from safecampus.services.location.location_service import LocationService
from safecampus.services.notifications.event_bus import DomainEventBus
from safecampus.services.sos.tokens import SessionTokenService

logger = get_logger(__name__)

UNKNOWN_NAME = "Unknown Student"
UNKNOWN_ROOM = "N/A"


@dataclass(frozen=True)
class TriggerResult:
    """
    Outcome of a trigger.

    Attributes:
        sos_id: Event id
        sos_token: Session secret (return to the owning device only)
        resumed: True when an existing SOS was resumed instead of created
    """

    sos_id: str
    sos_token: str
    resumed: bool = False

    def __repr__(self) -> str:
        return f"TriggerResult(sos_id={self.sos_id!r}, resumed={self.resumed})"


# =============================================================================
# AUTHORISATION
# =============================================================================

def can_recognise(role: ActorRole) -> bool:
    match role:
        case ActorRole.SECURITY | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT | ActorRole.WARDEN:
            return False


def can_acknowledge(role: ActorRole) -> bool:
    match role:
        case ActorRole.WARDEN | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT | ActorRole.SECURITY:
            return False


def can_resolve(actor: Actor, event: SOSEvent) -> bool:
    """Responders resolve any event; students only their own."""
    match actor.role:
        case ActorRole.SECURITY | ActorRole.WARDEN | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT:
            return actor.id == event.user_id


def can_view(actor: Actor, event: SOSEvent) -> bool:
    match actor.role:
        case ActorRole.SECURITY | ActorRole.WARDEN | ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT:
            return actor.id == event.user_id


def can_edit_details(actor: Actor, event: SOSEvent) -> bool:
    match actor.role:
        case ActorRole.ADMIN:
            return True
        case ActorRole.STUDENT | ActorRole.WARDEN | ActorRole.SECURITY:
            return actor.id == event.user_id


class SOSLifecycleManager:
    """
    Orchestrates the SOS state machine over the document store.

    Usage:
        manager = SOSLifecycleManager(store, tokens, locations, directory, bus)
        result = await manager.trigger(actor, GeoPoint(lat, lng))
        await manager.recognise(result.sos_id, guard)
        await manager.resolve(result.sos_id, "Handled on site", guard)
    """

    def __init__(
        self,
        store: DocumentStore,
        tokens: SessionTokenService,
        locations: LocationService,
        directory: UserDirectory,
        events: DomainEventBus,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._tokens = tokens
        self._locations = locations
        self._directory = directory
        self._events = events
        self._clock = clock

    @property
    def tokens(self) -> SessionTokenService:
        return self._tokens

    # =========================================================================
    # TRIGGER
    # =========================================================================

    async def trigger(
        self,
        actor: Actor,
        location: GeoPoint,
        emergency_type: EmergencyType = EmergencyType.OTHER,
        trigger_method: TriggerMethod = TriggerMethod.MANUAL_GESTURE,
        triggered_at: Optional[datetime] = None,
    ) -> TriggerResult:
        """
        Raise a new SOS.

        Args:
            actor: Person in distress
            location: Position at trigger time
            emergency_type: Initial category (refined by update_details)
            trigger_method: How the alert was raised
            triggered_at: Device clock at trigger time

        Returns:
            TriggerResult with the new id and session token

        Raises:
            SOSAlreadyActiveError: The user already has an unresolved SOS
            StoreUnavailableError: Store unreachable
        """
        existing = await self.find_active_sos_id(actor.id)
        if existing is not None:
            SOS_TRIGGERED_TOTAL.labels(result="already_active").inc()
            logger.warning("Duplicate SOS trigger", user_id=actor.id, sos_id=existing)
            raise SOSAlreadyActiveError(sos_id=existing)

        sos_id = uuid4().hex
        profile = await self._load_profile(actor.id)
        session = self._tokens.build_session(sos_id, actor.id)
        now = self._clock()

        event = SOSEvent(
            id=sos_id,
            user_id=actor.id,
            user_name=self._display_name(actor, profile),
            user_phone=profile.phone if profile else "",
            role=profile.role if profile else actor.role,
            hostel_id=(profile.hostel_id if profile else None) or actor.hostel_id,
            room_number=(profile.room_number if profile else None) or UNKNOWN_ROOM,
            location=location,
            live_location=location,
            timeline=[TimelineEntry(time=now, action=ACTION_TRIGGERED, by=actor.id)],
            emergency_type=emergency_type,
            trigger_method=trigger_method,
            triggered_at=triggered_at or now,
        )
        document = event.to_dict()
        document["createdAt"] = SERVER_TIMESTAMP

        try:
            async with self._store.transaction() as tx:
                pointer = await tx.get(SOS_ACTIVE_USERS, actor.id)
                if pointer is not None:
                    previous = await tx.get(SOS_EVENTS, pointer.get("sosId", ""))
                    if previous is not None and not previous.get("status", {}).get("resolved", False):
                        raise SOSAlreadyActiveError(sos_id=pointer.get("sosId"))
                    logger.warning("Replacing stale active SOS pointer", user_id=actor.id)

                marker = {"userId": actor.id, "sosId": sos_id, "createdAt": SERVER_TIMESTAMP}
                if pointer is None:
                    # A rival trigger inserting the same key fails this create
                    tx.create(SOS_ACTIVE_USERS, actor.id, marker)
                else:
                    tx.set(SOS_ACTIVE_USERS, actor.id, marker)
                tx.create(SOS_EVENTS, sos_id, document)
                tx.create(SOS_SESSIONS, sos_id, session.to_dict())
        except SOSAlreadyActiveError:
            SOS_TRIGGERED_TOTAL.labels(result="already_active").inc()
            raise
        except DocumentExistsError as e:
            if e.collection != SOS_ACTIVE_USERS:
                raise
            # Lost a concurrent trigger race for the same user
            SOS_TRIGGERED_TOTAL.labels(result="already_active").inc()
            pointer = await self._store.get(SOS_ACTIVE_USERS, actor.id)
            raise SOSAlreadyActiveError(sos_id=(pointer or {}).get("sosId")) from e

        SOS_TRIGGERED_TOTAL.labels(result="created").inc()
        ACTIVE_SOS.inc()
        logger.warning(
            "SOS triggered",
            sos_id=sos_id,
            user_id=actor.id,
            hostel_id=event.hostel_id,
            emergency_type=emergency_type.value,
            trigger_method=trigger_method.value,
        )

        try:
            await self._locations.publish(
                actor.id,
                PositionFix(latitude=location.lat, longitude=location.lng),
                sos_id=sos_id,
            )
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="initial_location").inc()
            logger.error("Initial live location write failed", sos_id=sos_id, error=str(e))

        self._events.publish(SOSCreated(event=event))
        return TriggerResult(sos_id=sos_id, sos_token=session.token)

    async def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        """Profile lookup; absence or failure falls back to placeholders."""
        try:
            profile = await self._directory.get_profile(user_id)
        except Exception as e:
            logger.warning("Profile lookup failed, using placeholders", user_id=user_id, error=str(e))
            return None
        if profile is None:
            logger.info("No profile for SOS user, using placeholders", user_id=user_id)
        return profile

    @staticmethod
    def _display_name(actor: Actor, profile: Optional[UserProfile]) -> str:
        if profile is not None:
            return profile.display_name
        return actor.name or UNKNOWN_NAME

    # =========================================================================
    # ENRICHMENT / RESPONSE
    # =========================================================================

    async def update_details(
        self,
        sos_id: str,
        actor: Actor,
        emergency_type: EmergencyType,
        description: Optional[str] = None,
        voice_transcript: Optional[str] = None,
    ) -> SOSEvent:
        """
        Overwrite the detail fields gathered after the trigger.

        Last write wins for every field (absent values clear the stored
        one); each call appends its own timeline entry.
        """
        event = await self.get_event(sos_id)
        if not can_edit_details(actor, event):
            raise PermissionDeniedError("Only the owner can add details to an SOS")

        entry = TimelineEntry(
            time=self._clock(),
            action=ACTION_DETAILS_ADDED,
            by=actor.id,
            note=emergency_type.value,
        )
        await self._update_event(sos_id, {
            "emergencyType": emergency_type.value,
            "description": description,
            "voiceTranscript": voice_transcript,
            "isDetailsAdded": True,
            "timeline": ArrayAppend(entry.to_dict()),
        })
        logger.info("SOS details added", sos_id=sos_id, emergency_type=emergency_type.value)
        return await self.get_event(sos_id)

    async def recognise(self, sos_id: str, actor: Actor) -> SOSEvent:
        """
        Security takes ownership of the alert.

        Recognising a resolved event is a no-op. Concurrent
        recognitions are not serialised: the last one wins.
        """
        if not can_recognise(actor.role):
            raise PermissionDeniedError("Only security can recognise an SOS")

        event = await self.get_event(sos_id)
        if event.is_resolved:
            logger.info("Recognise on resolved SOS ignored", sos_id=sos_id, actor_id=actor.id)
            return event

        now = self._clock()
        assigned = AssignedActor(id=actor.id, name=actor.name, role=ActorRole.SECURITY.value)
        await self._update_event(sos_id, {
            "status.recognised": True,
            "recognisedBy": actor.id,
            "assignedTo": assigned.to_dict(),
            "timeline": ArrayAppend(
                TimelineEntry(time=now, action=ACTION_RECOGNISED, by=actor.id).to_dict()
            ),
        })

        if not event.is_recognised:
            SOS_TIME_TO_RECOGNISE.observe(max(0.0, (now - event.triggered_at).total_seconds()))
        if event.is_recognised and event.recognised_by != actor.id:
            logger.warning(
                "SOS re-recognised by a different responder",
                sos_id=sos_id,
                previous=event.recognised_by,
                actor_id=actor.id,
            )
        logger.info("SOS recognised", sos_id=sos_id, actor_id=actor.id)
        return await self.get_event(sos_id)

    async def acknowledge(self, sos_id: str, actor: Actor) -> SOSEvent:
        """Warden acknowledgement; timeline only, no status change."""
        if not can_acknowledge(actor.role):
            raise PermissionDeniedError("Only wardens can acknowledge an SOS")

        event = await self.get_event(sos_id)
        if (
            actor.role is ActorRole.WARDEN
            and actor.hostel_id
            and event.hostel_id
            and actor.hostel_id != event.hostel_id
        ):
            raise PermissionDeniedError("SOS belongs to another hostel")

        await self._update_event(sos_id, {
            "timeline": ArrayAppend(
                TimelineEntry(
                    time=self._clock(),
                    action=ACTION_WARDEN_ACKNOWLEDGED,
                    by=actor.id,
                ).to_dict()
            ),
        })
        logger.info("SOS acknowledged by warden", sos_id=sos_id, actor_id=actor.id)
        return await self.get_event(sos_id)

    # =========================================================================
    # CLOSING
    # =========================================================================

    async def resolve(self, sos_id: str, summary: str, actor: Actor) -> SOSEvent:
        """
        Resolve an SOS.

        Event, session and active pointer change in one transaction.
        Re-resolving is a no-op that returns the stored event.
        """
        event = await self.get_event(sos_id)
        if not can_resolve(actor, event):
            raise PermissionDeniedError("Not permitted to resolve this SOS")

        closed, changed = await self._close(
            sos_id,
            by=actor.id,
            summary=summary,
            action=ACTION_RESOLVED,
            deactivate_session=True,
        )
        if changed:
            track_sos_resolution("resolved")
            logger.info("SOS resolved", sos_id=sos_id, actor_id=actor.id, role=actor.role.value)
        return closed

    async def cancel(self, sos_id: str, actor: Actor) -> SOSEvent:
        """Owner self-cancel (authenticated, atomic with the session)."""
        event = await self.get_event(sos_id)
        if actor.id != event.user_id:
            raise PermissionDeniedError("Only the owner can cancel an SOS")

        closed, changed = await self._close(
            sos_id,
            by=actor.id,
            summary=CANCEL_SUMMARY,
            action=ACTION_CANCELLED,
            deactivate_session=True,
        )
        if changed:
            track_sos_resolution("cancelled")
            logger.info("SOS cancelled by owner", sos_id=sos_id)
        return closed

    async def cancel_with_token(
        self,
        sos_id: str,
        sos_token: str,
        summary: Optional[str] = None,
    ) -> SOSEvent:
        """
        Cancel using only the session token.

        The event update is transactional with the pointer; the session
        deactivation is a separate best-effort write. If it fails the
        token is still refused because its event is resolved.

        Raises:
            InvalidSOSTokenError: Token invalid, inactive, expired, or
                unknown SOS id (indistinguishable)
        """
        session = await self._tokens.require_valid(sos_id, sos_token)

        closed, changed = await self._close(
            sos_id,
            by=session.user_id,
            summary=summary or CANCEL_SUMMARY,
            action=ACTION_CANCELLED_WITH_TOKEN,
            deactivate_session=False,
        )

        await self._tokens.deactivate(sos_id)

        if changed:
            track_sos_resolution("cancelled_token")
            logger.info("SOS cancelled with token", sos_id=sos_id)
        return closed

    async def _close(
        self,
        sos_id: str,
        by: str,
        summary: str,
        action: str,
        deactivate_session: bool,
    ) -> tuple[SOSEvent, bool]:
        """
        Mark an event resolved.

        Returns:
            (event after the transaction, whether this call resolved it)
        """
        changed = False
        async with self._store.transaction() as tx:
            data = await tx.get(SOS_EVENTS, sos_id)
            if data is None:
                raise NotFoundError("SOS event", sos_id)
            event = SOSEvent.from_dict(data)
            if event.is_resolved:
                return event, False

            session = await tx.get(SOS_SESSIONS, sos_id) if deactivate_session else None
            pointer = await tx.get(SOS_ACTIVE_USERS, event.user_id)

            tx.update(SOS_EVENTS, sos_id, {
                "status.resolved": True,
                "resolvedAt": SERVER_TIMESTAMP,
                "resolutionSummary": summary,
                "timeline": ArrayAppend(
                    TimelineEntry(time=self._clock(), action=action, by=by, note=summary).to_dict()
                ),
            })
            if deactivate_session:
                if session is not None:
                    tx.update(SOS_SESSIONS, sos_id, {
                        "isActive": False,
                        "stoppedAt": SERVER_TIMESTAMP,
                    })
                else:
                    logger.warning("SOS has no session document", sos_id=sos_id)
            if pointer is not None and pointer.get("sosId") == sos_id:
                tx.delete(SOS_ACTIVE_USERS, event.user_id)
            changed = True

        return await self.get_event(sos_id), changed

    # =========================================================================
    # TOKEN-AUTHENTICATED LOCATION
    # =========================================================================

    async def update_location_with_token(
        self,
        sos_id: str,
        sos_token: str,
        latitude: float,
        longitude: float,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
        accuracy: Optional[float] = None,
    ) -> SOSSession:
        """
        Record a position pushed by a logged-out device.

        The event's ``liveLocation`` is updated first; the realtime
        store write that follows is best-effort.
        """
        session = await self._tokens.require_valid(sos_id, sos_token)
        point = GeoPoint(lat=latitude, lng=longitude)

        await self._update_event(sos_id, {"liveLocation": point.to_dict()})

        try:
            await self._locations.publish(
                session.user_id,
                PositionFix(
                    latitude=latitude,
                    longitude=longitude,
                    accuracy=accuracy,
                    heading=heading,
                    speed=speed,
                ),
                sos_id=sos_id,
            )
        except Exception as e:
            BEST_EFFORT_FAILURES_TOTAL.labels(component="token_location_write").inc()
            logger.warning("Live location write failed", sos_id=sos_id, error=str(e))
        return session

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_event(self, sos_id: str, actor: Optional[Actor] = None) -> SOSEvent:
        """
        Load an event.

        Raises:
            NotFoundError: Unknown id
            PermissionDeniedError: ``actor`` may not view it
        """
        data = await self._store.get(SOS_EVENTS, sos_id)
        if data is None:
            raise NotFoundError("SOS event", sos_id)
        event = SOSEvent.from_dict(data)
        if actor is not None and not can_view(actor, event):
            raise PermissionDeniedError("Not permitted to view this SOS")
        return event

    async def get_session(self, sos_id: str) -> Optional[SOSSession]:
        data = await self._store.get(SOS_SESSIONS, sos_id)
        return SOSSession.from_dict(data) if data else None

    async def find_active_sos_id(self, user_id: str) -> Optional[str]:
        """Id of the user's unresolved SOS, if any."""
        documents = await self._store.query(
            SOS_EVENTS,
            [Filter("userId", "==", user_id), Filter("status.resolved", "==", False)],
            order_by="triggeredAt",
            descending=True,
            limit=1,
        )
        return documents[0]["id"] if documents else None

    async def list_active(self, hostel_id: Optional[str] = None) -> list[SOSEvent]:
        """Unresolved events, newest first, optionally for one hostel."""
        documents = await self._store.query(
            SOS_EVENTS,
            self._active_filters(hostel_id),
            order_by="triggeredAt",
            descending=True,
        )
        return [SOSEvent.from_dict(doc) for doc in documents]

    async def list_resolved(self, limit: int = 50) -> list[SOSEvent]:
        """Resolved history, most recently resolved first."""
        documents = await self._store.query(
            SOS_EVENTS,
            [Filter("status.resolved", "==", True)],
            order_by="resolvedAt",
            descending=True,
            limit=limit,
        )
        return [SOSEvent.from_dict(doc) for doc in documents]

    async def subscribe_active(
        self,
        callback: Callable[[list[SOSEvent]], None],
        hostel_id: Optional[str] = None,
    ) -> Subscription:
        """Live view of unresolved events for responder dashboards."""
        return await self._store.subscribe(
            SOS_EVENTS,
            lambda documents: callback([SOSEvent.from_dict(doc) for doc in documents]),
            filters=self._active_filters(hostel_id),
            order_by="triggeredAt",
            descending=True,
        )

    async def subscribe_event(
        self,
        sos_id: str,
        callback: Callable[[Optional[SOSEvent]], None],
    ) -> Subscription:
        return await self._store.subscribe_document(
            SOS_EVENTS,
            sos_id,
            lambda data: callback(SOSEvent.from_dict(data) if data else None),
        )

    @staticmethod
    def _active_filters(hostel_id: Optional[str]) -> list[Filter]:
        filters = [Filter("status.resolved", "==", False)]
        if hostel_id is not None:
            filters.append(Filter("hostelId", "==", hostel_id))
        return filters

    async def _update_event(self, sos_id: str, updates: dict) -> None:
        try:
            await self._store.update(SOS_EVENTS, sos_id, updates)
        except DocumentNotFoundError as e:
            raise NotFoundError("SOS event", sos_id) from e
