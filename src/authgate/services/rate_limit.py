"""Rate limiting for code requests using a sliding window."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from enum import Enum

from fastapi import Request

from authgate.config import Settings

# Window length for every scope
WINDOW_SECONDS = 60 * 60


class RateLimitScope(str, Enum):
    """What a bucket is keyed by."""

    PHONE = "phone"
    ADDR = "addr"


def rate_limit_key(scope: RateLimitScope, value: str) -> str:
    """Build a bucket key, e.g. ``phone:+971500000000``."""
    return f"{scope.value}:{value}"


class RateLimiter(ABC):
    """Abuse control contract.

    Implementations may keep buckets in process or in a shared store; callers
    only see ``allow`` and ``reset``.
    """

    @abstractmethod
    async def allow(self, key: str) -> bool:
        """Record an attempt for ``key`` and return whether it is admitted.

        A denied attempt is not recorded.
        """

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget every attempt recorded for ``key``."""


class InMemoryRateLimiter(RateLimiter):
    """Process-local sliding window limiter.

    Note: This is suitable for single-instance deployments. Buckets are lost
    on restart and are not shared between instances.
    """

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        window_seconds: int = WINDOW_SECONDS,
    ) -> None:
        self._limits = {
            RateLimitScope.PHONE: settings.rate_limit_phone_hourly,
            RateLimitScope.ADDR: settings.rate_limit_ip_hourly,
        }
        self._clock = clock
        self._window = window_seconds
        # Maps key to attempt timestamps, oldest first
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def limit_for(self, key: str) -> int:
        """Hourly limit that applies to ``key``."""
        scope, _, _ = key.partition(":")
        try:
            return self._limits[RateLimitScope(scope)]
        except ValueError:
            raise ValueError(f"Unknown rate limit scope in key: {key!r}") from None

    async def allow(self, key: str) -> bool:
        limit = self.limit_for(key)

        async with self._lock:
            now = self._clock()
            window_start = now - self._window
            timestamps = [t for t in self._requests[key] if t >= window_start]
            self._requests[key] = timestamps

            if len(timestamps) >= limit:
                return False

            timestamps.append(now)
            return True

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)

    def reset_all(self) -> None:
        """Reset all rate limit entries. Useful for testing."""
        self._requests.clear()

    async def cleanup_old_entries(self) -> int:
        """Remove buckets with no attempts left in the window.

        Returns:
            Number of buckets removed
        """
        async with self._lock:
            window_start = self._clock() - self._window
            stale = [
                key
                for key, timestamps in self._requests.items()
                if not any(t >= window_start for t in timestamps)
            ]
            for key in stale:
                del self._requests[key]
        return len(stale)


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request headers.

    Checks common headers used by proxies and load balancers.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip() or None

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return None
