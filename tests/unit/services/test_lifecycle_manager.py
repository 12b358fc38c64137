"""
Unit Tests for the SOS Lifecycle Manager

Tests the SOS state machine end to end over the in-memory store:
uniqueness, monotonic status, append-only timeline, atomic closing,
token operations and queries.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest

from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.enums.emergency import EmergencyType, TriggerMethod
from safecampus.domain.errors import (
    InvalidSOSTokenError,
    NotFoundError,
    PermissionDeniedError,
    SOSAlreadyActiveError,
)
from safecampus.domain.models.actor import Actor
from safecampus.domain.models.geo import GeoPoint
from safecampus.domain.models.sos_event import (
    ACTION_CANCELLED,
    ACTION_CANCELLED_WITH_TOKEN,
    ACTION_DETAILS_ADDED,
    ACTION_RECOGNISED,
    ACTION_RESOLVED,
    ACTION_TRIGGERED,
    ACTION_WARDEN_ACKNOWLEDGED,
)
from safecampus.infrastructure.documents.collections import (
    SOS_ACTIVE_USERS,
    SOS_EVENTS,
    SOS_SESSIONS,
)
from safecampus.infrastructure.documents.memory_store import InMemoryDocumentStore
from safecampus.services.sos.lifecycle_manager import (
    SOSLifecycleManager,
    TriggerResult,
    can_acknowledge,
    can_recognise,
)

HOSTEL_GATE = GeoPoint(lat=21.1458, lng=79.0882, address="Hostel H1 Gate")


class TestTrigger:
    """Raising an SOS."""

    async def test_trigger_creates_event_and_session(self, manager: SOSLifecycleManager, student, profiles) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.get_event(result.sos_id)
        assert event.user_id == "stu-1"
        assert not event.status.recognised
        assert not event.status.resolved
        assert [entry.action for entry in event.timeline] == [ACTION_TRIGGERED]
        assert event.timeline[0].by == "stu-1"
        assert event.location == HOSTEL_GATE
        assert event.live_location == HOSTEL_GATE
        assert event.created_at is not None

        session = await manager.get_session(result.sos_id)
        assert session is not None
        assert session.is_active
        assert session.token == result.sos_token

    async def test_trigger_enriches_from_profile(self, manager: SOSLifecycleManager, student, profiles) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.get_event(result.sos_id)
        # Students are shown by username, not real name
        assert event.user_name == "night_owl"
        assert event.user_phone == "+91-9000000001"
        assert event.hostel_id == "H1"
        assert event.room_number == "B-214"

    async def test_missing_profile_uses_placeholders(self, manager: SOSLifecycleManager) -> None:
        anonymous = Actor(id="stu-9", role=ActorRole.STUDENT)

        result = await manager.trigger(anonymous, HOSTEL_GATE)

        event = await manager.get_event(result.sos_id)
        assert event.user_name == "Unknown Student"
        assert event.room_number == "N/A"
        assert event.hostel_id is None

    async def test_trigger_records_type_and_method(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(
            student,
            HOSTEL_GATE,
            emergency_type=EmergencyType.MEDICAL,
            trigger_method=TriggerMethod.SHAKE,
        )

        event = await manager.get_event(result.sos_id)
        assert event.emergency_type is EmergencyType.MEDICAL
        assert event.trigger_method is TriggerMethod.SHAKE

    async def test_trigger_writes_active_pointer(self, manager: SOSLifecycleManager, student, store) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        pointer = await store.get(SOS_ACTIVE_USERS, "stu-1")
        assert pointer["sosId"] == result.sos_id

    async def test_trigger_publishes_initial_location(self, container, student) -> None:
        result = await container.manager.trigger(student, HOSTEL_GATE)

        live = await container.locations.get("stu-1")
        assert live is not None
        assert live.sos_id == result.sos_id
        assert (live.latitude, live.longitude) == (HOSTEL_GATE.lat, HOSTEL_GATE.lng)

    async def test_result_repr_hides_token(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        assert result.sos_token not in repr(result)


class TestSingleActiveSOS:
    """At most one unresolved SOS per user."""

    async def test_second_trigger_rejected_with_existing_id(self, manager: SOSLifecycleManager, student, store) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(SOSAlreadyActiveError) as exc_info:
            await manager.trigger(student, HOSTEL_GATE)

        assert exc_info.value.sos_id == first.sos_id
        assert store.count(SOS_EVENTS) == 1
        assert store.count(SOS_SESSIONS) == 1

    async def test_concurrent_triggers_create_one_event(self, manager: SOSLifecycleManager, student, store) -> None:
        outcomes = await asyncio.gather(
            manager.trigger(student, HOSTEL_GATE),
            manager.trigger(student, HOSTEL_GATE),
            return_exceptions=True,
        )

        created = [o for o in outcomes if isinstance(o, TriggerResult)]
        rejected = [o for o in outcomes if isinstance(o, SOSAlreadyActiveError)]
        assert len(created) == 1
        assert len(rejected) == 1
        assert rejected[0].sos_id == created[0].sos_id
        assert store.count(SOS_EVENTS) == 1

    async def test_other_users_are_independent(self, manager: SOSLifecycleManager, student, other_student) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)
        second = await manager.trigger(other_student, HOSTEL_GATE)

        assert first.sos_id != second.sos_id

    async def test_trigger_allowed_after_resolution(self, manager: SOSLifecycleManager, student, guard) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)
        await manager.resolve(first.sos_id, "Handled", guard)

        second = await manager.trigger(student, HOSTEL_GATE)

        assert second.sos_id != first.sos_id
        assert await manager.find_active_sos_id("stu-1") == second.sos_id

    async def test_stale_pointer_is_replaced(self, manager: SOSLifecycleManager, student, store) -> None:
        # Pointer left behind for an event that is already resolved
        await store.set(SOS_EVENTS, "old", {
            "id": "old",
            "userId": "stu-1",
            "status": {"recognised": False, "resolved": True},
            "triggeredAt": "2026-03-01T10:00:00Z",
        })
        await store.set(SOS_ACTIVE_USERS, "stu-1", {"userId": "stu-1", "sosId": "old"})

        result = await manager.trigger(student, HOSTEL_GATE)

        pointer = await store.get(SOS_ACTIVE_USERS, "stu-1")
        assert pointer["sosId"] == result.sos_id

    async def test_pointer_to_open_event_blocks_trigger(self, manager: SOSLifecycleManager, student, store) -> None:
        # Pointer exists while the query precondition sees nothing (different owner field)
        await store.set(SOS_EVENTS, "open", {
            "id": "open",
            "userId": "someone-else",
            "status": {"recognised": False, "resolved": False},
        })
        await store.set(SOS_ACTIVE_USERS, "stu-1", {"userId": "stu-1", "sosId": "open"})

        with pytest.raises(SOSAlreadyActiveError) as exc_info:
            await manager.trigger(student, HOSTEL_GATE)

        assert exc_info.value.sos_id == "open"


class RivalPointerStore(InMemoryDocumentStore):
    """Commits a rival trigger's pointer between the reads and the commit of the next transaction."""

    def __init__(self) -> None:
        super().__init__()
        self.rival: tuple[str, str] | None = None

    @asynccontextmanager
    async def transaction(self):
        async with super().transaction() as tx:
            yield tx
            if self.rival is not None:
                user_id, sos_id = self.rival
                self.rival = None
                await self._commit({(SOS_ACTIVE_USERS, user_id): {"userId": user_id, "sosId": sos_id}})


class TestLostTriggerRace:
    """A rival trigger commits its pointer after ours was read as absent."""

    @pytest.fixture
    def store(self) -> RivalPointerStore:
        return RivalPointerStore()

    async def test_loser_gets_rival_sos_id(self, manager: SOSLifecycleManager, student, store) -> None:
        store.rival = ("stu-1", "rival-sos")

        with pytest.raises(SOSAlreadyActiveError) as exc_info:
            await manager.trigger(student, HOSTEL_GATE)

        assert exc_info.value.sos_id == "rival-sos"
        assert store.count(SOS_EVENTS) == 0
        assert store.count(SOS_SESSIONS) == 0
        assert (await store.get(SOS_ACTIVE_USERS, "stu-1"))["sosId"] == "rival-sos"

    async def test_trigger_without_rival_succeeds(self, manager: SOSLifecycleManager, student, store) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        assert (await store.get(SOS_ACTIVE_USERS, "stu-1"))["sosId"] == result.sos_id


class TestUpdateDetails:
    """Post-trigger enrichment."""

    async def test_details_overwrite_and_append(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        await manager.update_details(
            result.sos_id,
            student,
            EmergencyType.HARASSMENT,
            description="Followed from the library",
            voice_transcript="someone is following me",
        )
        event = await manager.update_details(result.sos_id, student, EmergencyType.MEDICAL)

        assert event.emergency_type is EmergencyType.MEDICAL
        assert event.description is None
        assert event.voice_transcript is None
        assert event.is_details_added
        details = [entry for entry in event.timeline if entry.action == ACTION_DETAILS_ADDED]
        assert [entry.note for entry in details] == ["harassment", "medical"]
        assert len(event.timeline) == 3

    async def test_only_owner_adds_details(self, manager: SOSLifecycleManager, student, other_student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(PermissionDeniedError):
            await manager.update_details(result.sos_id, other_student, EmergencyType.GENERAL)
        with pytest.raises(PermissionDeniedError):
            await manager.update_details(result.sos_id, guard, EmergencyType.GENERAL)

    async def test_unknown_event(self, manager: SOSLifecycleManager, student) -> None:
        with pytest.raises(NotFoundError):
            await manager.update_details("missing", student, EmergencyType.GENERAL)


class TestRecogniseAndAcknowledge:
    """Responder actions."""

    async def test_security_recognises(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.recognise(result.sos_id, guard)

        assert event.status.recognised
        assert not event.status.resolved
        assert event.status.is_in_progress
        assert event.recognised_by == "sec-1"
        assert event.assigned_to.id == "sec-1"
        assert event.assigned_to.name == "Officer Rao"
        assert event.assigned_to.role == "security"
        assert event.timeline[-1].action == ACTION_RECOGNISED

    async def test_students_and_wardens_cannot_recognise(self, manager: SOSLifecycleManager, student, warden) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(PermissionDeniedError):
            await manager.recognise(result.sos_id, student)
        with pytest.raises(PermissionDeniedError):
            await manager.recognise(result.sos_id, warden)

    async def test_last_recognition_wins(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        second_guard = Actor(id="sec-2", name="Officer Das", role=ActorRole.SECURITY)

        await manager.recognise(result.sos_id, guard)
        event = await manager.recognise(result.sos_id, second_guard)

        assert event.recognised_by == "sec-2"
        assert [e.action for e in event.timeline].count(ACTION_RECOGNISED) == 2

    async def test_recognise_after_resolve_is_noop(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        resolved = await manager.resolve(result.sos_id, "False alarm", guard)

        event = await manager.recognise(result.sos_id, guard)

        assert event.status.resolved
        assert not event.status.recognised
        assert len(event.timeline) == len(resolved.timeline)

    async def test_warden_acknowledges_own_hostel(self, manager: SOSLifecycleManager, student, warden, profiles) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.acknowledge(result.sos_id, warden)

        assert event.timeline[-1].action == ACTION_WARDEN_ACKNOWLEDGED
        assert event.timeline[-1].by == "war-1"
        assert not event.status.recognised

    async def test_warden_of_other_hostel_rejected(self, manager: SOSLifecycleManager, student, profiles) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        other_warden = Actor(id="war-2", name="Warden Sen", role=ActorRole.WARDEN, hostel_id="H2")

        with pytest.raises(PermissionDeniedError):
            await manager.acknowledge(result.sos_id, other_warden)

    def test_role_matrix(self) -> None:
        assert can_recognise(ActorRole.SECURITY)
        assert can_recognise(ActorRole.ADMIN)
        assert not can_recognise(ActorRole.WARDEN)
        assert not can_recognise(ActorRole.STUDENT)
        assert can_acknowledge(ActorRole.WARDEN)
        assert not can_acknowledge(ActorRole.SECURITY)


class TestResolve:
    """Closing an SOS."""

    async def test_happy_path_timeline(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        await manager.recognise(result.sos_id, guard)

        event = await manager.resolve(result.sos_id, "Escorted back to hostel", guard)

        assert event.status.recognised
        assert event.status.resolved
        assert event.resolution_summary == "Escorted back to hostel"
        assert event.resolved_at is not None
        assert [e.action for e in event.timeline] == [ACTION_TRIGGERED, ACTION_RECOGNISED, ACTION_RESOLVED]
        assert event.timeline[-1].note == "Escorted back to hostel"

    async def test_resolve_is_atomic_with_session_and_pointer(
        self, manager: SOSLifecycleManager, student, guard, store
    ) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        await manager.resolve(result.sos_id, "Handled", guard)

        session = await manager.get_session(result.sos_id)
        assert not session.is_active
        assert session.stopped_at is not None
        assert await store.get(SOS_ACTIVE_USERS, "stu-1") is None
        assert await manager.find_active_sos_id("stu-1") is None
        assert not await manager.tokens.validate(result.sos_id, result.sos_token)

    async def test_resolve_without_recognition(self, manager: SOSLifecycleManager, student, warden) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.resolve(result.sos_id, "Student safe", warden)

        assert event.status.resolved
        assert not event.status.recognised

    async def test_re_resolve_is_noop(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        first = await manager.resolve(result.sos_id, "Handled", guard)

        second = await manager.resolve(result.sos_id, "Handled again", guard)

        assert second.resolution_summary == "Handled"
        assert len(second.timeline) == len(first.timeline)

    async def test_owner_may_resolve_others_may_not(
        self, manager: SOSLifecycleManager, student, other_student
    ) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(PermissionDeniedError):
            await manager.resolve(result.sos_id, "Not mine", other_student)

        event = await manager.resolve(result.sos_id, "I am safe", student)
        assert event.status.resolved

    async def test_unknown_event(self, manager: SOSLifecycleManager, guard) -> None:
        with pytest.raises(NotFoundError):
            await manager.resolve("missing", "n/a", guard)


class TestCancel:
    """Owner cancellation, authenticated and by token."""

    async def test_owner_cancel(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.cancel(result.sos_id, student)

        assert event.status.resolved
        assert event.resolution_summary == "Cancelled by student"
        assert event.timeline[-1].action == ACTION_CANCELLED
        session = await manager.get_session(result.sos_id)
        assert not session.is_active

    async def test_only_owner_cancels(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(PermissionDeniedError):
            await manager.cancel(result.sos_id, guard)

    async def test_cancel_with_token(self, manager: SOSLifecycleManager, student, store) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.cancel_with_token(result.sos_id, result.sos_token)

        assert event.status.resolved
        assert event.timeline[-1].action == ACTION_CANCELLED_WITH_TOKEN
        assert event.timeline[-1].by == "stu-1"
        assert await store.get(SOS_ACTIVE_USERS, "stu-1") is None
        assert not await manager.tokens.validate(result.sos_id, result.sos_token)

    async def test_cancel_with_token_custom_summary(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        event = await manager.cancel_with_token(result.sos_id, result.sos_token, summary="Pressed by mistake")

        assert event.resolution_summary == "Pressed by mistake"

    async def test_token_cannot_be_reused(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        await manager.cancel_with_token(result.sos_id, result.sos_token)

        with pytest.raises(InvalidSOSTokenError):
            await manager.cancel_with_token(result.sos_id, result.sos_token)

    async def test_token_refused_when_session_write_failed(
        self, manager: SOSLifecycleManager, student, store, monkeypatch
    ) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        original_update = store.update

        async def sessions_unwritable(collection: str, doc_id: str, updates: dict) -> None:
            if collection == SOS_SESSIONS:
                raise ConnectionError("store unreachable")
            await original_update(collection, doc_id, updates)

        monkeypatch.setattr(store, "update", sessions_unwritable)
        await manager.cancel_with_token(result.sos_id, result.sos_token)
        monkeypatch.undo()
        assert (await manager.get_session(result.sos_id)).is_active

        assert not await manager.tokens.validate(result.sos_id, result.sos_token)
        with pytest.raises(InvalidSOSTokenError):
            await manager.update_location_with_token(result.sos_id, result.sos_token, 5.0, 5.0)

        event = await manager.get_event(result.sos_id)
        assert event.live_location.lat == HOSTEL_GATE.lat
        assert not (await manager.get_session(result.sos_id)).is_active

    async def test_wrong_token_leaves_event_untouched(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(InvalidSOSTokenError):
            await manager.cancel_with_token(result.sos_id, "guessed-token")

        event = await manager.get_event(result.sos_id)
        assert not event.status.resolved
        assert len(event.timeline) == 1

    async def test_unknown_id_looks_like_bad_token(self, manager: SOSLifecycleManager) -> None:
        with pytest.raises(InvalidSOSTokenError):
            await manager.cancel_with_token("missing", "anything")

    async def test_expired_token_rejected(self, manager: SOSLifecycleManager, student, clock) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        clock.advance(hours=49)

        with pytest.raises(InvalidSOSTokenError):
            await manager.cancel_with_token(result.sos_id, result.sos_token)


class TestTokenLocation:
    """Position updates from a logged-out device."""

    async def test_update_location_with_token(self, container, student) -> None:
        manager = container.manager
        result = await manager.trigger(student, HOSTEL_GATE)

        session = await manager.update_location_with_token(
            result.sos_id,
            result.sos_token,
            latitude=21.1470,
            longitude=79.0890,
            speed=1.4,
            accuracy=8.0,
        )

        assert session.user_id == "stu-1"
        event = await manager.get_event(result.sos_id)
        assert (event.live_location.lat, event.live_location.lng) == (21.1470, 79.0890)
        assert event.location == HOSTEL_GATE
        live = await container.locations.get("stu-1")
        assert live.latitude == 21.1470
        assert live.speed == 1.4
        assert live.sos_id == result.sos_id

    async def test_location_rejected_after_resolution(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        await manager.resolve(result.sos_id, "Handled", guard)

        with pytest.raises(InvalidSOSTokenError):
            await manager.update_location_with_token(result.sos_id, result.sos_token, 21.0, 79.0)

    async def test_invalid_coordinates(self, manager: SOSLifecycleManager, student) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        with pytest.raises(ValueError):
            await manager.update_location_with_token(result.sos_id, result.sos_token, 123.0, 79.0)


class TestQueries:
    """Reads and live views."""

    async def test_students_see_only_their_events(
        self, manager: SOSLifecycleManager, student, other_student, guard
    ) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)

        assert (await manager.get_event(result.sos_id, student)).id == result.sos_id
        assert (await manager.get_event(result.sos_id, guard)).id == result.sos_id
        with pytest.raises(PermissionDeniedError):
            await manager.get_event(result.sos_id, other_student)

    async def test_list_active_newest_first(
        self, manager: SOSLifecycleManager, student, other_student, clock
    ) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)
        clock.advance(minutes=2)
        second = await manager.trigger(other_student, HOSTEL_GATE)

        active = await manager.list_active()

        assert [event.id for event in active] == [second.sos_id, first.sos_id]

    async def test_list_active_by_hostel(self, manager: SOSLifecycleManager, student, other_student) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)
        await manager.trigger(other_student, HOSTEL_GATE)

        active = await manager.list_active(hostel_id="H1")

        assert [event.id for event in active] == [first.sos_id]

    async def test_resolved_events_move_to_history(
        self, manager: SOSLifecycleManager, student, other_student, guard
    ) -> None:
        first = await manager.trigger(student, HOSTEL_GATE)
        second = await manager.trigger(other_student, HOSTEL_GATE)
        await manager.resolve(first.sos_id, "Handled", guard)

        assert [event.id for event in await manager.list_active()] == [second.sos_id]
        assert [event.id for event in await manager.list_resolved()] == [first.sos_id]

    async def test_subscribe_active_tracks_changes(self, manager: SOSLifecycleManager, student, guard) -> None:
        snapshots: list[list[str]] = []
        subscription = await manager.subscribe_active(
            lambda events: snapshots.append([event.id for event in events])
        )

        result = await manager.trigger(student, HOSTEL_GATE)
        await manager.resolve(result.sos_id, "Handled", guard)
        subscription.unsubscribe()

        assert snapshots[0] == []
        assert [result.sos_id] in snapshots
        assert snapshots[-1] == []

    async def test_subscribe_event_sees_resolution(self, manager: SOSLifecycleManager, student, guard) -> None:
        result = await manager.trigger(student, HOSTEL_GATE)
        seen: list[bool] = []

        subscription = await manager.subscribe_event(
            result.sos_id,
            lambda event: seen.append(event.is_resolved),
        )
        await manager.resolve(result.sos_id, "Handled", guard)
        subscription.unsubscribe()

        assert seen[0] is False
        assert seen[-1] is True


class TestNotificationFanOut:
    """SOSCreated reaches the dispatcher through the event bus."""

    async def test_trigger_notifies_responders(self, container, student, profiles, push_sender) -> None:
        result = await container.manager.trigger(student, HOSTEL_GATE)
        await container.events.drain()

        tokens = sorted(message.device_token for message in push_sender.sent)
        assert tokens == ["device-sec-1", "device-sec-2", "device-war-1"]
        event = await container.manager.get_event(result.sos_id)
        assert event.notification_sent
        assert event.notification_timestamp is not None
