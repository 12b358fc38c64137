"""
Domain events published by the services layer.

Consumers subscribe on the DomainEventBus; publishers never call a
consumer directly.
"""

from dataclasses import dataclass, field
from datetime import datetime

from safecampus.domain.models.sos_event import SOSEvent
from safecampus.domain.models.timestamps import utc_now


@dataclass(frozen=True)
class DomainEvent:
    """Base for all domain events."""

    occurred_at: datetime = field(default_factory=utc_now, kw_only=True)


@dataclass(frozen=True)
class SOSCreated(DomainEvent):
    """An SOS event document was durably created."""

    event: SOSEvent
