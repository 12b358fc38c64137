"""
Domain Event Bus

In-process publish/subscribe for domain events. Publishing never
blocks the publisher: every handler runs on its own task, and handler
failures are logged, never propagated back to the operation that
raised the event.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from safecampus.config.logging_config import get_logger
from safecampus.domain.events import DomainEvent

logger = get_logger(__name__)

EventT = TypeVar("EventT", bound=DomainEvent)
Handler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:
    """
    Fire-and-forget event dispatch.

    Usage:
        bus = DomainEventBus()
        bus.subscribe(SOSCreated, dispatcher.handle_sos_created)
        bus.publish(SOSCreated(event=event))
        await bus.drain()  # tests and shutdown
    """

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: type[EventT], handler: Callable[[EventT], Awaitable[None]]) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: DomainEvent) -> int:
        """
        Schedule every matching handler.

        Returns:
            Number of handlers scheduled
        """
        scheduled = 0
        for event_type, handlers in self._handlers.items():
            if not isinstance(event, event_type):
                continue
            for handler in handlers:
                task = asyncio.create_task(self._run(handler, event))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                scheduled += 1
        return scheduled

    async def _run(self, handler: Handler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                "Domain event handler failed",
                event_type=type(event).__name__,
                handler=getattr(handler, "__qualname__", repr(handler)),
                error=str(e),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait until every scheduled handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)
