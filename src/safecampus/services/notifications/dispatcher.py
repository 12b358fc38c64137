"""
Notification Dispatcher

Fans a newly created SOS out to responders as high-priority push
notifications: every security user with a registered device, plus the
wardens of the student's hostel.

SAFETY_NOTE: Runs on the event bus after the SOS is durable. Nothing
here can fail or delay the trigger; every failure is logged and
counted.
"""

from typing import Optional

from safecampus.config.logging_config import get_logger
from safecampus.domain.enums.actor_role import ActorRole
from safecampus.domain.events import SOSCreated
from safecampus.domain.models.actor import UserProfile
from safecampus.domain.models.sos_event import SOSEvent
from safecampus.infrastructure.documents.collections import SOS_EVENTS
from safecampus.infrastructure.documents.field_ops import SERVER_TIMESTAMP
from safecampus.infrastructure.documents.store import DocumentStore
from safecampus.infrastructure.metrics import NOTIFICATIONS_SENT_TOTAL
from safecampus.infrastructure.push.sender import PushMessage, PushSender
from safecampus.services.directory import UserDirectory
from safecampus.services.notifications.event_bus import DomainEventBus

logger = get_logger(__name__)

ALERT_TITLE = "SOS ALERT"
ALERT_TYPE = "SOS_ALERT"


def build_alert(event: SOSEvent, device_token: str) -> PushMessage:
    """Push payload for one responder device."""
    location = event.location
    where = (location.address if location else None) or "Unknown Location"
    return PushMessage(
        device_token=device_token,
        title=ALERT_TITLE,
        body=f"Emergency at {where}! Student: {event.user_name}",
        data={
            "type": ALERT_TYPE,
            "eventId": event.id,
            "lat": str(location.lat) if location else "",
            "lng": str(location.lng) if location else "",
            "studentName": event.user_name,
        },
        high_priority=True,
    )


class NotificationDispatcher:
    """
    SOSCreated consumer.

    Usage:
        dispatcher = NotificationDispatcher(store, directory, sender)
        dispatcher.register(bus)
    """

    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        sender: PushSender,
    ) -> None:
        self._store = store
        self._directory = directory
        self._sender = sender

    def register(self, bus: DomainEventBus) -> None:
        bus.subscribe(SOSCreated, self.handle_sos_created)

    async def handle_sos_created(self, created: SOSCreated) -> int:
        try:
            return await self.dispatch(created.event)
        except Exception as e:
            logger.error(
                "SOS notification dispatch failed",
                sos_id=created.event.id,
                error=str(e),
                exc_info=True,
            )
            return 0

    async def dispatch(self, event: SOSEvent) -> int:
        """
        Notify every responder for one event.

        Returns:
            Number of devices the provider accepted
        """
        recipients = await self._recipients(event)
        logger.info(
            "Dispatching SOS notifications",
            sos_id=event.id,
            security=len(recipients[ActorRole.SECURITY]),
            wardens=len(recipients[ActorRole.WARDEN]),
        )

        try:
            await self._store.update(SOS_EVENTS, event.id, {
                "notificationSent": True,
                "notificationTimestamp": SERVER_TIMESTAMP,
            })
        except Exception as e:
            logger.error("Could not mark SOS notified", sos_id=event.id, error=str(e))

        delivered = 0
        seen: set[str] = set()
        for audience, profiles in recipients.items():
            for profile in profiles:
                token = profile.push_token
                if not token or token in seen:
                    continue
                seen.add(token)
                if await self._send(event, profile, token, audience):
                    delivered += 1
        return delivered

    async def _recipients(self, event: SOSEvent) -> dict[ActorRole, list[UserProfile]]:
        security = await self._directory.list_by_role(ActorRole.SECURITY)
        wardens: list[UserProfile] = []
        if event.hostel_id:
            wardens = await self._directory.list_by_role(ActorRole.WARDEN, hostel_id=event.hostel_id)
        return {
            ActorRole.SECURITY: [p for p in security if p.push_token],
            ActorRole.WARDEN: [p for p in wardens if p.push_token],
        }

    async def _send(
        self,
        event: SOSEvent,
        profile: UserProfile,
        token: str,
        audience: ActorRole,
    ) -> bool:
        message = build_alert(event, token)
        message_id: Optional[str] = None
        try:
            message_id = await self._sender.send(message)
        except Exception as e:
            NOTIFICATIONS_SENT_TOTAL.labels(audience=audience.value, status="failed").inc()
            logger.warning(
                "SOS push failed",
                sos_id=event.id,
                recipient=profile.uid,
                device=message.token_hint,
                error=str(e),
            )
            return False

        NOTIFICATIONS_SENT_TOTAL.labels(audience=audience.value, status="sent").inc()
        logger.debug("SOS push sent", sos_id=event.id, recipient=profile.uid, message_id=message_id)
        return True
