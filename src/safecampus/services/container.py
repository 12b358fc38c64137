"""
Service Container

Composition root: builds the stores selected by settings and wires
the services on top of them. The HTTP layer holds one container per
application; tests build one over in-memory stores.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from safecampus.config.logging_config import get_logger
from safecampus.config.settings import Settings, get_settings
from safecampus.domain.models.timestamps import utc_now
from safecampus.infrastructure.database.connection import DatabaseManager
from safecampus.infrastructure.documents.memory_store import InMemoryDocumentStore
from safecampus.infrastructure.documents.store import DocumentStore
from safecampus.infrastructure.identity.verifier import IdentityVerifier
from safecampus.infrastructure.location.memory_store import InMemoryLocationStore
from safecampus.infrastructure.location.store import LocationStore
from safecampus.infrastructure.push.sender import LoggingPushSender, PushSender
from safecampus.services.directory import UserDirectory
from safecampus.services.location.location_service import LocationService
from safecampus.services.notifications.dispatcher import NotificationDispatcher
from safecampus.services.notifications.event_bus import DomainEventBus
from safecampus.services.safewalk.monitor import SafeWalkMonitor
from safecampus.services.sos.lifecycle_manager import SOSLifecycleManager
from safecampus.services.sos.tokens import SessionTokenService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived service of one application instance."""

    settings: Settings
    store: DocumentStore
    location_store: LocationStore
    push_sender: PushSender
    events: DomainEventBus
    directory: UserDirectory
    tokens: SessionTokenService
    locations: LocationService
    manager: SOSLifecycleManager
    safe_walks: SafeWalkMonitor
    dispatcher: NotificationDispatcher
    database: Optional[DatabaseManager] = None
    _verifier: Optional[IdentityVerifier] = field(default=None, repr=False)

    @property
    def verifier(self) -> IdentityVerifier:
        """Bearer credential verifier (Firebase Auth unless overridden)."""
        if self._verifier is None:
            from safecampus.infrastructure.firebase_app import get_firebase_app
            from safecampus.infrastructure.identity.verifier import FirebaseIdentityVerifier

            self._verifier = FirebaseIdentityVerifier(get_firebase_app(self.settings.firebase))
        return self._verifier

    async def startup(self) -> None:
        if self.database is not None and not self.database.is_initialized:
            await self.database.initialize()
            logger.info("Document database initialized")

    async def health_check(self) -> dict[str, bool]:
        components: dict[str, bool] = {}
        try:
            components["document_store"] = await self.store.health_check()
        except Exception as e:
            logger.error("Document store health check failed", error=str(e))
            components["document_store"] = False
        return components

    async def shutdown(self) -> None:
        await self.events.drain()
        await self.locations.close()
        await self.store.close()
        logger.info("Service container shut down")


def _build_document_store(settings: Settings) -> tuple[DocumentStore, Optional[DatabaseManager]]:
    match settings.document_store_backend:
        case "postgres":
            from safecampus.infrastructure.documents.sql_store import SqlDocumentStore

            database = DatabaseManager(settings)
            return SqlDocumentStore(database), database
        case "memory":
            return InMemoryDocumentStore(), None


def _build_location_store(settings: Settings) -> LocationStore:
    match settings.location_store_backend:
        case "firebase":
            from safecampus.infrastructure.firebase_app import get_firebase_app
            from safecampus.infrastructure.location.firebase_store import FirebaseLocationStore

            return FirebaseLocationStore(get_firebase_app(settings.firebase))
        case "memory":
            return InMemoryLocationStore()


def _build_push_sender(settings: Settings) -> PushSender:
    match settings.push_provider:
        case "fcm":
            from safecampus.infrastructure.firebase_app import get_firebase_app
            from safecampus.infrastructure.push.fcm import FcmPushSender

            return FcmPushSender(get_firebase_app(settings.firebase))
        case "log":
            return LoggingPushSender()


def create_container(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    location_store: Optional[LocationStore] = None,
    push_sender: Optional[PushSender] = None,
    verifier: Optional[IdentityVerifier] = None,
    clock: Callable[[], datetime] = utc_now,
) -> ServiceContainer:
    """
    Build a container.

    Args:
        settings: Application settings (defaults to get_settings())
        store: Document store override
        location_store: Location store override
        push_sender: Push provider override
        verifier: Credential verifier override
        clock: Time source shared by every service

    Returns:
        Wired ServiceContainer (call ``startup`` before serving)
    """
    settings = settings or get_settings()

    database: Optional[DatabaseManager] = None
    if store is None:
        store, database = _build_document_store(settings)
    location_store = location_store or _build_location_store(settings)
    push_sender = push_sender or _build_push_sender(settings)

    events = DomainEventBus()
    directory = UserDirectory(store)
    tokens = SessionTokenService(
        store,
        ttl=timedelta(hours=settings.sos.session_ttl_hours),
        token_bytes=settings.sos.token_bytes,
        clock=clock,
    )
    locations = LocationService(location_store, settings.location, clock=clock)
    manager = SOSLifecycleManager(store, tokens, locations, directory, events, clock=clock)
    safe_walks = SafeWalkMonitor(store, manager, locations, settings.safewalk, clock=clock)

    dispatcher = NotificationDispatcher(store, directory, push_sender)
    dispatcher.register(events)

    logger.info(
        "Service container created",
        document_store=type(store).__name__,
        location_store=type(location_store).__name__,
        push_provider=push_sender.provider_name,
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        location_store=location_store,
        push_sender=push_sender,
        events=events,
        directory=directory,
        tokens=tokens,
        locations=locations,
        manager=manager,
        safe_walks=safe_walks,
        dispatcher=dispatcher,
        database=database,
        _verifier=verifier,
    )
