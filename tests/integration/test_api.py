"""
Integration Tests - HTTP API

Drives the FastAPI application in-process over in-memory stores:
SOS lifecycle, token endpoints, safe walks and live locations.
"""

from typing import AsyncGenerator

import httpx
import pytest
from prometheus_client import REGISTRY

from safecampus.config import Settings
from safecampus.config.settings import RateLimitSettings
from safecampus.main import create_application
from safecampus.services.container import create_container

STUDENT = {"Authorization": "Bearer test:stu-1:student:H1"}
OTHER_STUDENT = {"Authorization": "Bearer test:stu-2:student:H2"}
GUARD = {"Authorization": "Bearer test:sec-1:security"}
WARDEN = {"Authorization": "Bearer test:war-1:warden:H1"}
OTHER_WARDEN = {"Authorization": "Bearer test:war-2:warden:H2"}

TRIGGER_BODY = {"latitude": 21.1458, "longitude": 79.0882, "address": "Hostel H1 Gate"}

WALK_BODY = {
    "start_location": {"lat": 21.1400, "lng": 79.0600, "name": "Central Library"},
    "destination": {"lat": 21.1250, "lng": 79.0510, "name": "Hostel H1"},
    "expected_duration": 15,
}


@pytest.fixture
async def client(container, profiles) -> AsyncGenerator[httpx.AsyncClient, None]:
    app = create_application(container=container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def trigger(client: httpx.AsyncClient, headers: dict = STUDENT) -> dict:
    response = await client.post("/api/v1/sos", json=TRIGGER_BODY, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Probes answer without credentials."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_readiness_reports_document_store(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health/ready")

        body = response.json()
        assert response.status_code == 200
        assert body["ready"] is True
        assert body["components"]["document_store"] is True
        assert body["backends"] == {"document_store": "memory", "location_store": "memory", "push_provider": "log"}

    async def test_not_ready_without_document_store(self, client: httpx.AsyncClient, container, monkeypatch) -> None:
        async def unreachable() -> bool:
            return False

        monkeypatch.setattr(container.store, "health_check", unreachable)

        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["ready"] is False

    async def test_liveness(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health/live")

        assert response.json()["status"] == "alive"

    async def test_metrics_exposed(self, client: httpx.AsyncClient) -> None:
        await trigger(client)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "safecampus_sos_triggered_total" in response.text


class TestRequestMetrics:
    """Requests are counted per route template."""

    @staticmethod
    def seen(method: str, endpoint: str, status: str) -> float:
        labels = {"method": method, "endpoint": endpoint, "status_code": status}
        return REGISTRY.get_sample_value("safecampus_http_requests_total", labels) or 0.0

    async def test_counted_by_route_template(self, client: httpx.AsyncClient) -> None:
        before = self.seen("GET", "/api/v1/sos/{sos_id}", "404")

        await client.get("/api/v1/sos/missing-1", headers=GUARD)
        await client.get("/api/v1/sos/missing-2", headers=GUARD)

        assert self.seen("GET", "/api/v1/sos/{sos_id}", "404") == before + 2

    async def test_unknown_paths_share_one_label(self, client: httpx.AsyncClient) -> None:
        before = self.seen("GET", "unmatched", "404")

        await client.get("/api/v1/no-such-thing")

        assert self.seen("GET", "unmatched", "404") == before + 1


class TestAuthentication:
    """Bearer credentials on user-facing endpoints."""

    async def test_missing_credentials(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/sos", json=TRIGGER_BODY)

        assert response.status_code == 401
        assert response.json() == {"detail": "Not authenticated"}

    async def test_rejected_credentials(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/sos",
            json=TRIGGER_BODY,
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid authentication credentials"}

    async def test_students_cannot_list_active_events(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/sos/active", headers=STUDENT)

        assert response.status_code == 403
        assert response.json() == {"detail": "Responder access required"}

    async def test_correlation_id_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health", headers={"X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"


class TestSOSEndpoints:
    """Trigger, respond and resolve over HTTP."""

    async def test_trigger_returns_id_and_token(self, client: httpx.AsyncClient) -> None:
        body = await trigger(client)

        assert body["sos_id"]
        assert len(body["sos_token"]) == 43
        assert body["resumed"] is False

    async def test_second_trigger_conflicts(self, client: httpx.AsyncClient) -> None:
        first = await trigger(client)

        response = await client.post("/api/v1/sos", json=TRIGGER_BODY, headers=STUDENT)

        assert response.status_code == 409
        assert response.json()["sos_id"] == first["sos_id"]

    async def test_out_of_range_latitude_rejected(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/sos",
            json={"latitude": 123.0, "longitude": 79.0},
            headers=STUDENT,
        )

        assert response.status_code == 422

    async def test_owner_reads_event_with_profile_fields(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        response = await client.get(f"/api/v1/sos/{sos_id}", headers=STUDENT)

        event = response.json()
        assert response.status_code == 200
        assert event["user_name"] == "night_owl"
        assert event["room_number"] == "B-214"
        assert event["recognised"] is False
        assert event["resolved"] is False
        assert event["location"]["address"] == "Hostel H1 Gate"
        assert [entry["action"] for entry in event["timeline"]] == ["Triggered"]

    async def test_other_student_cannot_read_event(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        response = await client.get(f"/api/v1/sos/{sos_id}", headers=OTHER_STUDENT)

        assert response.status_code == 403

    async def test_unknown_event(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/sos/does-not-exist", headers=GUARD)

        assert response.status_code == 404

    async def test_add_details(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        response = await client.patch(
            f"/api/v1/sos/{sos_id}/details",
            json={"emergency_type": "medical", "description": "Fainted near the stairs"},
            headers=STUDENT,
        )

        event = response.json()
        assert response.status_code == 200
        assert event["emergency_type"] == "medical"
        assert event["is_details_added"] is True

    async def test_recognise_and_resolve(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        student_attempt = await client.post(f"/api/v1/sos/{sos_id}/recognise", headers=STUDENT)
        recognised = await client.post(f"/api/v1/sos/{sos_id}/recognise", headers=GUARD)
        resolved = await client.post(
            f"/api/v1/sos/{sos_id}/resolve",
            json={"summary": "Escorted to the medical room"},
            headers=GUARD,
        )

        assert student_attempt.status_code == 403
        assert recognised.json()["recognised"] is True
        assert recognised.json()["recognised_by"] == "sec-1"
        event = resolved.json()
        assert event["resolved"] is True
        assert event["resolution_summary"] == "Escorted to the medical room"
        assert [entry["action"] for entry in event["timeline"]] == ["Triggered", "Recognised", "Resolved"]

        active = await client.get("/api/v1/sos/active", headers=GUARD)
        history = await client.get("/api/v1/sos/history", headers=GUARD)
        assert active.json() == []
        assert [event["id"] for event in history.json()] == [sos_id]

    async def test_warden_acknowledges_own_hostel_only(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        foreign = await client.post(f"/api/v1/sos/{sos_id}/acknowledge", headers=OTHER_WARDEN)
        own = await client.post(f"/api/v1/sos/{sos_id}/acknowledge", headers=WARDEN)

        assert foreign.status_code == 403
        assert own.status_code == 200
        assert own.json()["recognised"] is True

    async def test_warden_list_defaults_to_own_hostel(self, client: httpx.AsyncClient) -> None:
        await trigger(client)

        own = await client.get("/api/v1/sos/active", headers=WARDEN)
        foreign = await client.get("/api/v1/sos/active", headers=OTHER_WARDEN)
        security = await client.get("/api/v1/sos/active", headers=GUARD)

        assert len(own.json()) == 1
        assert foreign.json() == []
        assert len(security.json()) == 1

    async def test_owner_cancel_frees_the_slot(self, client: httpx.AsyncClient) -> None:
        sos_id = (await trigger(client))["sos_id"]

        cancelled = await client.post(f"/api/v1/sos/{sos_id}/cancel", headers=STUDENT)

        assert cancelled.json()["resolved"] is True
        assert (await trigger(client))["sos_id"] != sos_id

    async def test_responders_notified(self, client: httpx.AsyncClient, container, push_sender) -> None:
        await trigger(client)
        await container.events.drain()

        tokens = sorted(message.device_token for message in push_sender.sent)
        assert tokens == ["device-sec-1", "device-sec-2", "device-war-1"]


class TestTokenEndpoints:
    """Session-token authenticated writes, no bearer required."""

    async def test_location_update(self, client: httpx.AsyncClient) -> None:
        created = await trigger(client)

        response = await client.post(
            "/api/v1/sos/token/location",
            json={**created, "latitude": 21.1460, "longitude": 79.0885, "speed": 1.2},
        )
        event = await client.get(f"/api/v1/sos/{created['sos_id']}", headers=GUARD)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "sos_id": created["sos_id"]}
        assert event.json()["live_location"]["lat"] == 21.1460

    async def test_wrong_token_rejected(self, client: httpx.AsyncClient) -> None:
        created = await trigger(client)

        response = await client.post(
            "/api/v1/sos/token/location",
            json={"sos_id": created["sos_id"], "sos_token": "guessed", "latitude": 21.0, "longitude": 79.0},
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid or expired SOS token"}

    async def test_unknown_event_indistinguishable(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/sos/token/location",
            json={"sos_id": "no-such-sos", "sos_token": "x", "latitude": 21.0, "longitude": 79.0},
        )

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid or expired SOS token"}

    async def test_cancel_is_single_use(self, client: httpx.AsyncClient) -> None:
        created = await trigger(client)

        first = await client.post("/api/v1/sos/token/cancel", json=created)
        second = await client.post("/api/v1/sos/token/cancel", json=created)
        event = await client.get(f"/api/v1/sos/{created['sos_id']}", headers=STUDENT)

        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        assert second.status_code == 401
        assert event.json()["resolved"] is True


class TestSafeWalkEndpoints:
    """Walk monitoring over HTTP."""

    async def test_start_and_fetch(self, client: httpx.AsyncClient) -> None:
        started = await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)
        walk_id = started.json()["id"]

        mine = await client.get("/api/v1/safe-walks/mine", headers=STUDENT)
        monitored = await client.get("/api/v1/safe-walks/active", headers=GUARD)

        assert started.status_code == 201
        assert started.json()["status"] == "active"
        assert mine.json()["id"] == walk_id
        assert [walk["id"] for walk in monitored.json()] == [walk_id]

    async def test_no_current_walk(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/safe-walks/mine", headers=STUDENT)

        assert response.status_code == 200
        assert response.json() is None

    async def test_off_route_position_flags_walk(self, client: httpx.AsyncClient) -> None:
        walk_id = (await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)).json()["id"]

        near = await client.post(
            f"/api/v1/safe-walks/{walk_id}/positions",
            json={"latitude": 21.1300, "longitude": 79.0540},
            headers=STUDENT,
        )
        farther = await client.post(
            f"/api/v1/safe-walks/{walk_id}/positions",
            json={"latitude": 21.1500, "longitude": 79.0700},
            headers=STUDENT,
        )

        assert near.json()["off_route"] is False
        assert farther.json()["off_route"] is True
        assert farther.json()["flagged_off_route"] is True
        assert farther.json()["walk"]["status"] == "off-route"

    async def test_escalate_raises_sos(self, client: httpx.AsyncClient) -> None:
        walk_id = (await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)).json()["id"]

        response = await client.post(
            f"/api/v1/safe-walks/{walk_id}/escalate",
            json={"latitude": 21.1350, "longitude": 79.0560},
            headers=STUDENT,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["walk"]["status"] == "sos"
        assert body["walk"]["linked_sos_id"] == body["sos_id"]
        event = await client.get(f"/api/v1/sos/{body['sos_id']}", headers=GUARD)
        assert event.json()["resolved"] is False

        completed = await client.post(f"/api/v1/safe-walks/{walk_id}/complete", json={}, headers=STUDENT)
        assert completed.status_code == 409

    async def test_escalate_with_active_sos_conflicts(self, client: httpx.AsyncClient) -> None:
        existing = await trigger(client)
        walk_id = (await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)).json()["id"]

        response = await client.post(f"/api/v1/safe-walks/{walk_id}/escalate", json={}, headers=STUDENT)
        walk = await client.get(f"/api/v1/safe-walks/{walk_id}", headers=STUDENT)

        assert response.status_code == 409
        assert response.json()["sos_id"] == existing["sos_id"]
        assert walk.json()["status"] == "danger"

    async def test_escort_and_messages(self, client: httpx.AsyncClient) -> None:
        walk_id = (await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)).json()["id"]

        requested = await client.post(f"/api/v1/safe-walks/{walk_id}/escort-request", headers=STUDENT)
        assigned = await client.post(
            f"/api/v1/safe-walks/{walk_id}/escort",
            json={"escort_id": "sec-1", "escort_name": "Officer Rao"},
            headers=GUARD,
        )
        messaged = await client.post(
            f"/api/v1/safe-walks/{walk_id}/messages",
            json={"message": "Escort is at the library steps"},
            headers=GUARD,
        )

        assert requested.json()["escort_requested"] is True
        assert assigned.json()["assigned_escort"]["id"] == "sec-1"
        assert messaged.json()["timeline"][-1]["details"].endswith("Escort is at the library steps")

    async def test_complete_walk(self, client: httpx.AsyncClient) -> None:
        walk_id = (await client.post("/api/v1/safe-walks", json=WALK_BODY, headers=STUDENT)).json()["id"]

        response = await client.post(
            f"/api/v1/safe-walks/{walk_id}/complete",
            json={"note": "Home"},
            headers=STUDENT,
        )
        mine = await client.get("/api/v1/safe-walks/mine", headers=STUDENT)

        assert response.json()["status"] == "completed"
        assert mine.json() is None


class TestLocationEndpoints:
    """Live location reads."""

    async def test_own_location_after_token_update(self, client: httpx.AsyncClient) -> None:
        created = await trigger(client)
        await client.post(
            "/api/v1/sos/token/location",
            json={**created, "latitude": 21.1460, "longitude": 79.0885},
        )

        response = await client.get("/api/v1/locations/stu-1", headers=STUDENT)

        body = response.json()
        assert body["status"] == "active"
        assert body["sos_id"] == created["sos_id"]

    async def test_unknown_user_is_offline(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/locations/nobody", headers=GUARD)

        assert response.json() == {
            "user_id": "nobody",
            "status": "offline",
            "latitude": None,
            "longitude": None,
            "last_updated": None,
            "speed": None,
            "heading": None,
            "accuracy": None,
            "sos_id": None,
        }

    async def test_students_cannot_read_others(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/locations/stu-1", headers=OTHER_STUDENT)
        listing = await client.get("/api/v1/locations", headers=STUDENT)

        assert response.status_code == 403
        assert listing.status_code == 403


class TestUserEndpoints:
    async def test_register_push_token(self, client: httpx.AsyncClient, container) -> None:
        response = await client.put(
            "/api/v1/users/me/push-token",
            json={"push_token": "device-stu-1"},
            headers=STUDENT,
        )

        assert response.status_code == 204
        profile = await container.directory.get_profile("stu-1")
        assert profile.push_token == "device-stu-1"


class TestRateLimiting:
    """Token bucket in front of the API."""

    @pytest.fixture
    async def limited_client(
        self, store, location_store, push_sender, clock, identity_verifier
    ) -> AsyncGenerator[httpx.AsyncClient, None]:
        settings = Settings(
            env="development",
            document_store_backend="memory",
            location_store_backend="memory",
            push_provider="log",
            rate_limit=RateLimitSettings(rate_limit_enabled=True, rate_limit_requests_per_minute=1),
        )
        services = create_container(
            settings,
            store=store,
            location_store=location_store,
            push_sender=push_sender,
            verifier=identity_verifier,
            clock=clock,
        )
        transport = httpx.ASGITransport(app=create_application(container=services))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            yield http
        await services.events.drain()

    async def test_burst_is_limited(self, limited_client: httpx.AsyncClient) -> None:
        statuses = [
            (await limited_client.get("/api/v1/locations/stu-1", headers=STUDENT)).status_code
            for _ in range(20)
        ]

        assert 429 in statuses
        assert statuses[0] == 200

    async def test_health_is_exempt(self, limited_client: httpx.AsyncClient) -> None:
        statuses = {(await limited_client.get("/api/v1/health")).status_code for _ in range(20)}

        assert statuses == {200}
