"""
Firebase Cloud Messaging Push Sender

Sends through firebase_admin.messaging. The SDK call is blocking and
runs in a worker thread; transient provider errors are retried with
exponential back-off.
"""

import asyncio

import firebase_admin
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from safecampus.config.logging_config import get_logger
from safecampus.domain.errors import PushDeliveryError
from safecampus.infrastructure.push.sender import PushMessage, PushSender

logger = get_logger(__name__)

TRANSIENT_ERRORS = (
    firebase_exceptions.UnavailableError,
    firebase_exceptions.InternalError,
    firebase_exceptions.DeadlineExceededError,
)


class FcmPushSender(PushSender):
    """
    FCM implementation of PushSender.

    Usage:
        sender = FcmPushSender(get_firebase_app(settings.firebase))
        message_id = await sender.send(PushMessage(...))
    """

    def __init__(self, app: firebase_admin.App) -> None:
        self._app = app

    @property
    def provider_name(self) -> str:
        return "fcm"

    def _build(self, message: PushMessage) -> messaging.Message:
        android = None
        apns = None
        if message.high_priority:
            android = messaging.AndroidConfig(priority="high")
            apns = messaging.APNSConfig(headers={"apns-priority": "10"})

        return messaging.Message(
            token=message.device_token,
            notification=messaging.Notification(title=message.title, body=message.body),
            data={k: str(v) for k, v in message.data.items()},
            android=android,
            apns=apns,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _send_with_retry(self, fcm_message: messaging.Message) -> str:
        return await asyncio.to_thread(messaging.send, fcm_message, False, self._app)

    async def send(self, message: PushMessage) -> str:
        try:
            message_id = await self._send_with_retry(self._build(message))
        except messaging.UnregisteredError as e:
            logger.warning("Device token no longer registered", device=message.token_hint)
            raise PushDeliveryError("Device token unregistered") from e
        except firebase_exceptions.FirebaseError as e:
            logger.error("FCM send failed", device=message.token_hint, code=e.code)
            raise PushDeliveryError(f"FCM error: {e.code}") from e

        logger.debug("FCM message sent", device=message.token_hint, message_id=message_id)
        return message_id
