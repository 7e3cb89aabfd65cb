"""Sliding-window rate limiting for the redemption and polling endpoints."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class RateLimitType(str, Enum):
    """Rate limit types for different endpoint categories."""

    START = "start"
    CALLBACK = "callback"
    REDEEM = "redeem"
    POLL = "poll"


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit type."""

    requests: int
    window_seconds: int


# Redemption is the brute-force surface (passwords and 6-digit codes), so it is
# the tightest. Polling runs every few seconds per open tab.
RATE_LIMIT_CONFIG: dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.START: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.CALLBACK: RateLimitConfig(requests=30, window_seconds=60),
    RateLimitType.REDEEM: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.POLL: RateLimitConfig(requests=120, window_seconds=60),
}


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds


# Idle keys are dropped at most this often, from inside check()
CLEANUP_INTERVAL_SECONDS = 60


class InMemoryRateLimiter:
    """In-memory sliding window limiter.

    Per-process only; with several API workers each enforces its own window.
    Keys whose window has emptied are evicted.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._requests: dict[str, list[float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._last_cleanup = clock()

    async def check(self, identifier: str, limit_type: RateLimitType) -> RateLimitResult:
        """Record a request for ``identifier`` unless it is over the limit."""
        config = RATE_LIMIT_CONFIG[limit_type]
        key = f"{limit_type.value}:{identifier}"
        now = self._clock()
        window_start = now - config.window_seconds

        async with self._lock:
            if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
                self._evict_idle(now)

            timestamps = [t for t in self._requests.get(key, ()) if t > window_start]

            if len(timestamps) >= config.requests:
                self._requests[key] = timestamps
                return RateLimitResult(
                    success=False,
                    limit=config.requests,
                    remaining=0,
                    reset=int(min(timestamps) + config.window_seconds),
                )

            timestamps.append(now)
            self._requests[key] = timestamps

            return RateLimitResult(
                success=True,
                limit=config.requests,
                remaining=config.requests - len(timestamps),
                reset=int(now + config.window_seconds),
            )

    def _evict_idle(self, now: float) -> int:
        removed = 0
        for key in list(self._requests):
            limit_type = RateLimitType(key.split(":", 1)[0])
            window_start = now - RATE_LIMIT_CONFIG[limit_type].window_seconds
            timestamps = [t for t in self._requests[key] if t > window_start]
            if timestamps:
                self._requests[key] = timestamps
            else:
                del self._requests[key]
                removed += 1
        self._last_cleanup = now
        return removed

    async def cleanup_old_entries(self) -> int:
        """Evict keys with no requests left in their window.

        Returns:
            Number of keys removed
        """
        async with self._lock:
            return self._evict_idle(self._clock())

    def __len__(self) -> int:
        return len(self._requests)

    def reset(self) -> None:
        """Reset all rate limit entries. Useful for testing."""
        self._requests.clear()
        self._last_cleanup = self._clock()


_rate_limiter = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    """Get the global rate limiter instance."""
    return _rate_limiter


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request headers, honouring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return None


def get_identifier(ip: str | None, user_id: str | None = None) -> str:
    """Rate limit key: the user for signed-in requests, else the client IP."""
    if user_id:
        return f"user:{user_id}"
    return f"ip:{ip or 'unknown'}"


async def check_rate_limit(
    request: Request,
    limit_type: RateLimitType,
    user_id: str | None = None,
) -> RateLimitResult:
    """Check the rate limit for a request."""
    identifier = get_identifier(get_client_ip(request), user_id)
    return await get_rate_limiter().check(identifier, limit_type)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Generate rate limit headers for response."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }

    if not result.success:
        retry_after = max(0, result.reset - int(time.time()))
        headers["Retry-After"] = str(retry_after)

    return headers
