"""
Rate Limiting Middleware

Per-caller token buckets in front of the API.

Requests are classified by path:

- health, metrics and docs endpoints are never limited
- ``/sos/token/*`` is called by locked devices streaming positions;
  keyed by client address since there is no bearer credential
- other ``/sos`` paths get the large SOS budget so a caller under load
  can still raise, update or cancel an alert
- everything else uses the standard budget

Authenticated callers are keyed by a hash of their bearer credential;
the middleware runs before authentication, so the user id is not yet
known.
"""

import asyncio
import hashlib
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from safecampus.config.logging_config import get_logger
from safecampus.config.settings import RateLimitSettings
from safecampus.infrastructure.metrics import RATE_LIMIT_EXCEEDED

logger = get_logger(__name__)


class TrafficClass(StrEnum):
    EXEMPT = "exempt"
    TOKEN = "token"
    SOS = "sos"
    STANDARD = "standard"


@dataclass(frozen=True)
class RateLimitConfig:
    """Budgets per traffic class, in requests per minute plus burst."""

    requests_per_minute: int = 60
    sos_requests_per_minute: int = 240
    burst_size: int = 10
    api_prefix: str = "/api/v1"

    @classmethod
    def from_settings(cls, settings: RateLimitSettings, api_prefix: str = "/api/v1") -> "RateLimitConfig":
        return cls(
            requests_per_minute=settings.rate_limit_requests_per_minute,
            sos_requests_per_minute=settings.rate_limit_sos_requests_per_minute,
            burst_size=settings.rate_limit_burst_size,
            api_prefix=api_prefix,
        )

    def per_minute(self, traffic: TrafficClass) -> int:
        if traffic in (TrafficClass.SOS, TrafficClass.TOKEN):
            return self.sos_requests_per_minute
        return self.requests_per_minute

    def classify(self, path: str) -> TrafficClass:
        if path == "/metrics" or path.startswith(("/docs", "/redoc", "/openapi.json")):
            return TrafficClass.EXEMPT
        if path.startswith(f"{self.api_prefix}/health"):
            return TrafficClass.EXEMPT
        if path.startswith(f"{self.api_prefix}/sos/token/"):
            return TrafficClass.TOKEN
        if path == f"{self.api_prefix}/sos" or path.startswith(f"{self.api_prefix}/sos/"):
            return TrafficClass.SOS
        return TrafficClass.STANDARD


class TokenBucket:
    """
    Classic token bucket.

    Refills continuously at ``rate`` tokens per second up to
    ``capacity``. ``clock`` is injectable for tests.
    """

    def __init__(self, rate: float, capacity: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.rate = rate
        self.capacity = capacity
        self._clock = clock
        self.tokens = float(capacity)
        self.last_update = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_update) * self.rate)
        self.last_update = now

    async def acquire(self) -> bool:
        async with self._lock:
            self._refill()
            if self.tokens >= 1:
                self.tokens -= 1
                return True
            return False

    @property
    def remaining(self) -> int:
        return int(self.tokens)

    def seconds_until_available(self) -> int:
        """Whole seconds until one more request would be admitted."""
        deficit = 1 - self.tokens
        if deficit <= 0 or self.rate <= 0:
            return 0
        return max(1, math.ceil(deficit / self.rate))


class RateLimiter:
    """Buckets keyed by (traffic class, caller)."""

    IDLE_SECONDS = 600

    def __init__(self, config: Optional[RateLimitConfig] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._buckets: dict[tuple[TrafficClass, str], TokenBucket] = {}

    def bucket_for(self, traffic: TrafficClass, caller: str) -> TokenBucket:
        key = (traffic, caller)
        bucket = self._buckets.get(key)
        if bucket is None:
            per_minute = self.config.per_minute(traffic)
            bucket = TokenBucket(
                rate=per_minute / 60.0,
                capacity=per_minute + self.config.burst_size,
                clock=self._clock,
            )
            self._buckets[key] = bucket
        return bucket

    async def check(self, traffic: TrafficClass, caller: str) -> tuple[bool, TokenBucket]:
        bucket = self.bucket_for(traffic, caller)
        allowed = await bucket.acquire()
        if not allowed:
            RATE_LIMIT_EXCEEDED.labels(client_type=traffic.value).inc()
            logger.warning("Rate limit exceeded", traffic=traffic.value, caller=caller[:12])
        self._evict_idle()
        return allowed, bucket

    def _evict_idle(self) -> None:
        now = self._clock()
        idle = [key for key, bucket in self._buckets.items() if now - bucket.last_update > self.IDLE_SECONDS]
        for key in idle:
            del self._buckets[key]

    def __len__(self) -> int:
        return len(self._buckets)


def caller_key(request: Request, traffic: TrafficClass) -> str:
    """
    Stable, non-reversible caller identity.

    Token endpoints always use the client address: their bodies carry
    the credential and the same device may be signed out.
    """
    authorization = request.headers.get("Authorization", "")
    if traffic is not TrafficClass.TOKEN and authorization.lower().startswith("bearer "):
        digest = hashlib.sha256(authorization[7:].encode("utf-8")).hexdigest()
        return f"cred:{digest[:32]}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        address = forwarded.split(",")[0].strip()
    else:
        address = request.client.host if request.client else "unknown"
    return f"ip:{address}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, config: Optional[RateLimitConfig] = None) -> None:
        super().__init__(app)
        self.limiter = RateLimiter(config)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        traffic = self.limiter.config.classify(request.url.path)
        if traffic is TrafficClass.EXEMPT:
            return await call_next(request)

        allowed, bucket = await self.limiter.check(traffic, caller_key(request, traffic))
        if not allowed:
            return Response(
                content='{"detail": "Rate limit exceeded. Please try again later."}',
                status_code=429,
                media_type="application/json",
                headers={
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(bucket.seconds_until_available()),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(bucket.remaining)
        return response
