"""
Position sources.

A PositionSource yields device position fixes in the order the OS
geolocation callback delivers them. The host shell pushes fixes into
a QueuePositionSource; tracking loops consume them.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from safecampus.domain.models.geo import PositionFix


class PositionSource(ABC):
    """Asynchronous stream of position fixes."""

    @abstractmethod
    async def next_fix(self) -> Optional[PositionFix]:
        """Wait for the next fix; None once the source is closed."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    async def fixes(self) -> AsyncIterator[PositionFix]:
        while True:
            fix = await self.next_fix()
            if fix is None:
                return
            yield fix


class QueuePositionSource(PositionSource):
    """Position source fed by ``push`` calls from the host shell."""

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[Optional[PositionFix]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def push(self, fix: PositionFix) -> None:
        """Deliver a fix; the oldest pending fix is dropped when full."""
        if self._closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(fix)

    async def next_fix(self) -> Optional[PositionFix]:
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed
