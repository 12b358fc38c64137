"""
Foreground Tracking Service

Background tracking loop that runs independently of the user's login
session. It forwards position fixes to the token-authenticated
location endpoint, so it keeps working after logout as long as the
SOS token stays valid.

The loop stops itself when the server rejects the token (the SOS was
resolved or cancelled elsewhere).
"""

import asyncio
import time
from typing import Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from safecampus.config.logging_config import get_logger
from safecampus.domain.errors import TrackingBridgeError
from safecampus.domain.models.geo import PositionFix
from safecampus.infrastructure.metrics import BEST_EFFORT_FAILURES_TOTAL
from safecampus.infrastructure.tracking.bridge import TrackingBridge, TrackingRequest
from safecampus.infrastructure.tracking.position_source import PositionSource

logger = get_logger(__name__)

LOCATION_PATH = "/sos/token/location"


class _TransientPostError(Exception):
    """Retryable server-side failure."""


class ForegroundTrackingService(TrackingBridge):
    """
    asyncio implementation of the native tracking service.

    Usage:
        service = ForegroundTrackingService(source, base_url)
        await service.start(TrackingRequest(sos_id, sos_token, user_id))
        ...
        await service.stop()
    """

    def __init__(
        self,
        source: PositionSource,
        base_url: str,
        min_interval_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Args:
            source: Where position fixes come from
            base_url: API base URL (including the version prefix)
            min_interval_seconds: Fixes closer together are skipped
            client: Pre-built HTTP client (tests pass a mock transport)
        """
        self._source = source
        self._base_url = base_url.rstrip("/")
        self._min_interval = min_interval_seconds
        self._client = client
        self._owns_client = client is None
        self._task: Optional[asyncio.Task] = None
        self._request: Optional[TrackingRequest] = None
        self._last_post: Optional[float] = None
        self.posted_count = 0

    async def start(self, request: TrackingRequest) -> None:
        if await self.is_running():
            if self._request and self._request.sos_id == request.sos_id:
                return
            await self.stop()

        if self._client is None:
            try:
                self._client = httpx.AsyncClient(base_url=self._base_url, timeout=10.0)
            except Exception as e:
                raise TrackingBridgeError(f"Could not create HTTP client: {e}") from e

        self._request = request
        self._last_post = None
        self._task = asyncio.create_task(self._run(request), name=f"sos-tracking-{request.sos_id}")
        logger.info("Foreground tracking started", sos_id=request.sos_id)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._request is not None:
            logger.info("Foreground tracking stopped", sos_id=self._request.sos_id)
        self._request = None

    async def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self, request: TrackingRequest) -> None:
        async for fix in self._source.fixes():
            now = time.monotonic()
            if self._last_post is not None and now - self._last_post < self._min_interval:
                continue
            try:
                accepted = await self._post(request, fix)
            except (httpx.HTTPError, _TransientPostError) as e:
                BEST_EFFORT_FAILURES_TOTAL.labels(component="tracking_post").inc()
                logger.warning("Tracking post failed", sos_id=request.sos_id, error=str(e))
                continue
            if not accepted:
                logger.info("SOS token rejected, tracking ends", sos_id=request.sos_id)
                return
            self._last_post = now
            self.posted_count += 1

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((httpx.TransportError, _TransientPostError)),
        reraise=True,
    )
    async def _post(self, request: TrackingRequest, fix: PositionFix) -> bool:
        """
        Send one fix.

        Returns:
            False when the server rejected the token
        """
        headers = {}
        if request.auth_token:
            headers["Authorization"] = f"Bearer {request.auth_token}"

        response = await self._client.post(
            f"{self._base_url}{LOCATION_PATH}",
            json={
                "sos_id": request.sos_id,
                "sos_token": request.sos_token,
                "latitude": fix.latitude,
                "longitude": fix.longitude,
                "speed": fix.speed,
                "heading": fix.heading,
                "accuracy": fix.accuracy,
            },
            headers=headers,
        )
        if response.status_code in (401, 403, 404):
            return False
        if response.status_code >= 500:
            raise _TransientPostError(f"Server returned {response.status_code}")
        response.raise_for_status()
        return True
