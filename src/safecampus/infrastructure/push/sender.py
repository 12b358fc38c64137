"""
Push Sender Port

Delivers one notification to one device registration token.

SECURITY: Device tokens identify a handset. They are logged only as
a short prefix.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from safecampus.config.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PushMessage:
    """
    One device notification.

    Attributes:
        device_token: Push registration token of the recipient device
        title: Notification title
        body: Notification body
        data: String key/value payload for the client app
        high_priority: Deliver immediately, waking the device
    """

    device_token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    high_priority: bool = True

    @property
    def token_hint(self) -> str:
        return f"{self.device_token[:8]}..."


class PushSender(ABC):
    """Abstract push notification provider."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def send(self, message: PushMessage) -> str:
        """
        Deliver a message.

        Returns:
            Provider message id

        Raises:
            PushDeliveryError: Delivery failed after retries
        """
        ...


class LoggingPushSender(PushSender):
    """
    Sender that only logs and records messages.

    Used in development and tests.
    """

    def __init__(self) -> None:
        self.sent: list[PushMessage] = []

    @property
    def provider_name(self) -> str:
        return "log"

    async def send(self, message: PushMessage) -> str:
        self.sent.append(message)
        logger.info(
            "Push notification (not delivered)",
            device=message.token_hint,
            title=message.title,
            data_type=message.data.get("type"),
        )
        return f"log-{len(self.sent)}"
