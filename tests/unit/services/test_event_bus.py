"""
Unit Tests for the Domain Event Bus
"""

from safecampus.domain.events import DomainEvent, SOSCreated
from safecampus.domain.models.sos_event import SOSEvent
from safecampus.services.notifications.event_bus import DomainEventBus


class TestDomainEventBus:
    """Fire-and-forget dispatch."""

    async def test_handlers_run_after_drain(self) -> None:
        bus = DomainEventBus()
        received: list[str] = []

        async def handler(created: SOSCreated) -> None:
            received.append(created.event.id)

        bus.subscribe(SOSCreated, handler)
        scheduled = bus.publish(SOSCreated(event=SOSEvent(id="sos-1", user_id="stu-1")))

        assert scheduled == 1
        assert received == []
        await bus.drain()
        assert received == ["sos-1"]
        assert bus.pending == 0

    async def test_failing_handler_is_isolated(self) -> None:
        bus = DomainEventBus()
        received: list[str] = []

        async def broken(created: SOSCreated) -> None:
            raise RuntimeError("push provider down")

        async def healthy(created: SOSCreated) -> None:
            received.append(created.event.id)

        bus.subscribe(SOSCreated, broken)
        bus.subscribe(SOSCreated, healthy)
        bus.publish(SOSCreated(event=SOSEvent(id="sos-1", user_id="stu-1")))
        await bus.drain()

        assert received == ["sos-1"]

    async def test_base_type_subscription(self) -> None:
        bus = DomainEventBus()
        seen: list[str] = []

        async def audit(event: DomainEvent) -> None:
            seen.append(type(event).__name__)

        bus.subscribe(DomainEvent, audit)
        bus.publish(SOSCreated(event=SOSEvent(id="sos-1", user_id="stu-1")))
        await bus.drain()

        assert seen == ["SOSCreated"]

    async def test_no_handlers(self) -> None:
        bus = DomainEventBus()

        assert bus.publish(SOSCreated(event=SOSEvent(id="sos-1", user_id="stu-1"))) == 0
        await bus.drain()
