"""
Fixed-window request counters in Redis.

Key layout: rate_limit:<endpoint>:<identifier>. The first request of a
window creates the counter with a TTL of one window; later requests only
increment it. When the key expires the next request starts a new window.
"""

from dataclasses import dataclass
from typing import Optional
from pydantic import BaseModel
from core.config import settings
from core.exceptions import StoreUnavailable
from core.redis_store import RedisStore
from utils.logger import get_logger
from utils.timestamps import now_ms

logger = get_logger(__name__)

RATE_LIMIT_PREFIX = "rate_limit:"

# INCR and the first-hit EXPIRE must not be split, or a crash in between
# leaves a counter that never expires.
#
# KEYS: counter key
# ARGV: window seconds
INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('TTL', KEYS[1])
return {count, ttl}
"""


@dataclass(frozen=True)
class RateLimitPreset:
    window_ms: int
    max_requests: int
    message: str = "Too many requests. Please try again later."


class RateLimitPresets:
    AUTH_LOGIN = RateLimitPreset(
        window_ms=15 * 60 * 1000,
        max_requests=5,
        message="Too many login attempts. Please try again later."
    )
    AUTH_REGISTER = RateLimitPreset(
        window_ms=60 * 60 * 1000,
        max_requests=3,
        message="Too many registration attempts. Please try again later."
    )
    PASSWORD_RESET_REQUEST = RateLimitPreset(
        window_ms=60 * 60 * 1000,
        max_requests=3,
        message="Too many password reset requests. Please try again later."
    )
    PASSWORD_RESET_CONFIRM = RateLimitPreset(
        window_ms=60 * 60 * 1000,
        max_requests=5,
        message="Too many password reset attempts. Please try again later."
    )
    EMAIL_VERIFICATION = RateLimitPreset(
        window_ms=60 * 60 * 1000,
        max_requests=5,
        message="Too many verification attempts. Please try again later."
    )
    TOKEN_REFRESH = RateLimitPreset(
        window_ms=15 * 60 * 1000,
        max_requests=20,
        message="Too many token refresh requests. Please try again later."
    )
    DEFAULT = RateLimitPreset(
        window_ms=settings.RATE_LIMIT_WINDOW_MS,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS
    )


class RateLimitDecision(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0


class RateLimitStatus(BaseModel):
    remaining: int
    reset_at: int
    limited: bool


def rate_limit_key(endpoint: str, identifier: str) -> str:
    return f"{RATE_LIMIT_PREFIX}{endpoint}:{identifier}"


def window_seconds(window_ms: int) -> int:
    return max(1, window_ms // 1000)


class RateLimiter:

    def __init__(self, redis: RedisStore):
        self.redis = redis
        self._increment_script = redis.register_script(INCREMENT_SCRIPT)

    async def allow(self, endpoint: str, identifier: str, window_ms: int, max_requests: int) -> RateLimitDecision:
        """
        Count one request and decide whether it may proceed.

        Never raises on store errors: if Redis is down the request is let
        through with a full allowance.
        """
        window = window_seconds(window_ms)

        try:
            count, ttl = await self.redis.run_script(
                self._increment_script,
                keys=[rate_limit_key(endpoint, identifier)],
                args=[window]
            )
        except StoreUnavailable:
            logger.warning(
                "Rate limiter unavailable, allowing request",
                extra={"endpoint": endpoint, "identifier": identifier}
            )
            return RateLimitDecision(
                allowed=True,
                limit=max_requests,
                remaining=max_requests,
                reset_at=now_ms() + window * 1000
            )

        count = int(count)
        ttl = int(ttl) if int(ttl) > 0 else window
        reset_at = now_ms() + ttl * 1000

        if count > max_requests:
            logger.warning(
                "Rate limit exceeded",
                extra={"endpoint": endpoint, "identifier": identifier, "count": count, "limit": max_requests}
            )
            return RateLimitDecision(
                allowed=False,
                limit=max_requests,
                remaining=0,
                reset_at=reset_at,
                retry_after=ttl
            )

        return RateLimitDecision(
            allowed=True,
            limit=max_requests,
            remaining=max_requests - count,
            reset_at=reset_at
        )

    async def reset(self, endpoint: str, identifier: str) -> bool:
        """Drop the counter for one (endpoint, identifier). Administrative use."""
        try:
            await self.redis.delete(rate_limit_key(endpoint, identifier))
            return True
        except StoreUnavailable:
            logger.error("Failed to reset rate limit", extra={"endpoint": endpoint, "identifier": identifier})
            return False

    async def status(self, endpoint: str, identifier: str, max_requests: int) -> RateLimitStatus:
        """Current standing of a counter without counting a request."""
        key = rate_limit_key(endpoint, identifier)

        try:
            raw = await self.redis.get(key)
            ttl = await self.redis.ttl(key)
        except StoreUnavailable:
            return RateLimitStatus(remaining=max_requests, reset_at=0, limited=False)

        count = int(raw) if raw else 0
        return RateLimitStatus(
            remaining=max(0, max_requests - count),
            reset_at=now_ms() + ttl * 1000 if ttl > 0 else 0,
            limited=count >= max_requests
        )

    async def clear(self, identifier: Optional[str] = None) -> int:
        """
        Delete counters for one identifier across all endpoints, or every
        counter when no identifier is given.

        Returns:
            Number of counters deleted

        Raises:
            StoreUnavailable: if Redis cannot be reached
        """
        pattern = f"{RATE_LIMIT_PREFIX}*:{identifier}" if identifier else f"{RATE_LIMIT_PREFIX}*"
        keys = [key async for key in self.redis.scan_iter(match=pattern, count=100)]
        deleted = await self.redis.delete(*keys)

        logger.info("Rate limit counters cleared", extra={"identifier": identifier, "count": deleted})
        return deleted
