from fastapi import Depends, Request, Response
from core.config import settings
from core.exceptions import RateLimited
from services.rate_limit_service import RateLimiter, RateLimitPreset, RateLimitDecision
from utils.deps import get_rate_limiter


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def rate_limit_headers(decision: RateLimitDecision) -> dict:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }


def rate_limit(endpoint: str, preset: RateLimitPreset):
    """
    Build a route dependency enforcing a fixed-window limit per client IP.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit("auth:login", RateLimitPresets.AUTH_LOGIN))])
    """

    async def dependency(
        request: Request,
        response: Response,
        limiter: RateLimiter = Depends(get_rate_limiter)
    ):
        if not settings.RATE_LIMIT_ENABLED:
            return

        decision = await limiter.allow(
            endpoint,
            get_client_ip(request),
            preset.window_ms,
            preset.max_requests
        )

        headers = rate_limit_headers(decision)

        if not decision.allowed:
            headers["Retry-After"] = str(decision.retry_after)
            raise RateLimited(decision.retry_after, preset.message, headers)

        response.headers.update(headers)

    return dependency
