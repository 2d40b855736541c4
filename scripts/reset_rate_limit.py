"""
Clear rate-limit counters.

Usage:
    python -m scripts.reset_rate_limit            # every counter
    python -m scripts.reset_rate_limit 10.0.0.7   # one client IP, all endpoints
"""

import argparse
import asyncio
import sys
from core.config import settings
from core.exceptions import StoreUnavailable
from core.redis_store import open_store
from services.rate_limit_service import RateLimiter


async def reset_rate_limits(identifier: str | None = None, redis_url: str | None = None) -> int:
    async with open_store(redis_url) as store:
        return await RateLimiter(store).clear(identifier)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Clear rate-limit counters")
    parser.add_argument("ip_address", nargs="?", help="Only clear counters for this client IP")
    parser.add_argument("--redis-url", default=settings.REDIS_URL, help="Redis connection URL")
    args = parser.parse_args(argv)

    try:
        count = asyncio.run(reset_rate_limits(args.ip_address, args.redis_url))
    except StoreUnavailable as e:
        print(f"Error resetting rate limits: {e.message}", file=sys.stderr)
        return 1

    if count == 0:
        print(f"No rate limit keys found for IP: {args.ip_address}" if args.ip_address else "No rate limit keys found")
    elif args.ip_address:
        print(f"Cleared {count} rate limit key(s) for IP: {args.ip_address}")
    else:
        print(f"Cleared {count} rate limit key(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
