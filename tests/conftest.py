"""Tests configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest

from safecampus.config import Settings
from safecampus.config.settings import RateLimitSettings
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.models.actor import Actor, UserProfile
from safecampus.infrastructure.documents.memory_store import InMemoryDocumentStore
from safecampus.infrastructure.identity.verifier import AuthenticationError, IdentityVerifier
from safecampus.infrastructure.location.memory_store import InMemoryLocationStore
from safecampus.infrastructure.push.sender import LoggingPushSender
from safecampus.services.container import ServiceContainer, create_container


class FakeClock:
    """Settable time source shared by every service under test."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class HeaderIdentityVerifier(IdentityVerifier):
    """
    Accepts credentials of the form ``test:<uid>:<role>[:<hostel>]``.
    """

    async def verify(self, credential: str) -> Actor:
        parts = credential.split(":")
        if len(parts) < 3 or parts[0] != "test":
            raise AuthenticationError("malformed test credential")
        hostel = parts[3] if len(parts) > 3 and parts[3] else None
        return Actor(id=parts[1], name=parts[1].title(), role=ActorRole.parse(parts[2]), hostel_id=hostel)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with in-memory backends."""
    return Settings(
        env="development",
        debug=True,
        document_store_backend="memory",
        location_store_backend="memory",
        push_provider="log",
        rate_limit=RateLimitSettings(rate_limit_enabled=False),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 21, 30, tzinfo=timezone.utc))


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def location_store() -> InMemoryLocationStore:
    return InMemoryLocationStore()


@pytest.fixture
def push_sender() -> LoggingPushSender:
    return LoggingPushSender()


@pytest.fixture
def identity_verifier() -> HeaderIdentityVerifier:
    return HeaderIdentityVerifier()


@pytest.fixture
async def container(
    test_settings, store, location_store, push_sender, clock, identity_verifier
) -> AsyncGenerator[ServiceContainer, None]:
    """Services over in-memory stores; pending event handlers finish before teardown."""
    services = create_container(
        test_settings,
        store=store,
        location_store=location_store,
        push_sender=push_sender,
        verifier=identity_verifier,
        clock=clock,
    )
    yield services
    await services.events.drain()


@pytest.fixture
def manager(container):
    return container.manager


@pytest.fixture
def student() -> Actor:
    return Actor(id="stu-1", name="Asha", role=ActorRole.STUDENT, hostel_id="H1")


@pytest.fixture
def other_student() -> Actor:
    return Actor(id="stu-2", name="Bela", role=ActorRole.STUDENT, hostel_id="H2")


@pytest.fixture
def guard() -> Actor:
    return Actor(id="sec-1", name="Officer Rao", role=ActorRole.SECURITY)


@pytest.fixture
def warden() -> Actor:
    return Actor(id="war-1", name="Warden Iyer", role=ActorRole.WARDEN, hostel_id="H1")


@pytest.fixture
async def profiles(container) -> list[UserProfile]:
    """Directory seeded with one student and responders."""
    seeded = [
        UserProfile(
            uid="stu-1",
            name="Asha Kulkarni",
            username="night_owl",
            phone="+91-9000000001",
            role=ActorRole.STUDENT,
            hostel_id="H1",
            room_number="B-214",
        ),
        UserProfile(uid="sec-1", name="Officer Rao", role=ActorRole.SECURITY, push_token="device-sec-1"),
        UserProfile(uid="sec-2", name="Officer Das", role=ActorRole.SECURITY, push_token="device-sec-2"),
        UserProfile(uid="sec-3", name="Officer Khan", role=ActorRole.SECURITY),
        UserProfile(uid="war-1", name="Warden Iyer", role=ActorRole.WARDEN, hostel_id="H1", push_token="device-war-1"),
        UserProfile(uid="war-2", name="Warden Sen", role=ActorRole.WARDEN, hostel_id="H2", push_token="device-war-2"),
    ]
    for profile in seeded:
        await container.directory.save_profile(profile)
    return seeded
