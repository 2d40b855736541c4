"""
Shared key-value store handle.

Every piece of token, session and rate-limit bookkeeping lives in Redis;
the process only holds this handle. The handle is built explicitly and
passed to the services that need it, so tests can hand in an isolated
instance instead of a module-level client.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Sequence, Set

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from core.config import settings
from core.exceptions import StoreUnavailable
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisStore:
    """
    Thin async wrapper over a redis.asyncio client.

    All commands go through _call so that any RedisError (connection
    refused, socket timeout, script error) surfaces as StoreUnavailable.
    Callers decide whether that means fail open or fail closed.
    """

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: Optional[str] = None, **kwargs) -> "RedisStore":
        """
        Build a store from a redis:// URL.

        Args:
            url: Connection URL (default: settings.REDIS_URL)
            **kwargs: Extra redis client options

        Returns:
            RedisStore instance (connection is opened lazily)
        """
        client = aioredis.from_url(
            url or settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            **kwargs
        )
        return cls(client)

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    async def _call(self, command: str, operation, *args, **kwargs) -> Any:
        try:
            return await operation(*args, **kwargs)
        except RedisError as e:
            logger.error(
                f"Redis {command} failed: {e}",
                extra={"command": command, "error_type": type(e).__name__}
            )
            raise StoreUnavailable(f"Redis {command} failed") from e

    # Strings

    async def get(self, key: str) -> Optional[str]:
        return await self._call("GET", self._client.get, key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        result = await self._call("SET", self._client.set, key, value, ex=ttl)
        return bool(result)

    async def getdel(self, key: str) -> Optional[str]:
        return await self._call("GETDEL", self._client.getdel, key)

    async def incr(self, key: str) -> int:
        return await self._call("INCR", self._client.incr, key)

    # Keys

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._call("DEL", self._client.delete, *keys)

    async def exists(self, key: str) -> bool:
        return await self._call("EXISTS", self._client.exists, key) == 1

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._call("EXPIRE", self._client.expire, key, seconds))

    async def ttl(self, key: str) -> int:
        return await self._call("TTL", self._client.ttl, key)

    async def scan_iter(self, match: str, count: int = 100) -> AsyncIterator[str]:
        """Iterate keys matching a glob pattern with SCAN (never KEYS)."""
        try:
            async for key in self._client.scan_iter(match=match, count=count):
                yield key
        except RedisError as e:
            logger.error(
                f"Redis SCAN failed: {e}",
                extra={"command": "SCAN", "pattern": match, "error_type": type(e).__name__}
            )
            raise StoreUnavailable("Redis SCAN failed") from e

    # Sets

    async def sadd(self, key: str, *members: str) -> int:
        return await self._call("SADD", self._client.sadd, key, *members)

    async def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return await self._call("SREM", self._client.srem, key, *members)

    async def smembers(self, key: str) -> Set[str]:
        return set(await self._call("SMEMBERS", self._client.smembers, key))

    async def sismember(self, key: str, member: str) -> bool:
        return bool(await self._call("SISMEMBER", self._client.sismember, key, member))

    # Scripts

    def register_script(self, source: str):
        """Register a Lua script; the returned object is run with run_script."""
        return self._client.register_script(source)

    async def run_script(self, script, keys: Sequence[str], args: Sequence[Any]) -> Any:
        return await self._call("EVALSHA", script, keys=list(keys), args=list(args))

    # Connection

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("Redis ping failed", extra={"error": str(e)})
            return False

    async def info(self) -> Dict[str, Any]:
        """Small health summary: version, memory, clients."""
        try:
            raw = await self._client.info()
        except RedisError:
            return {"connected": False}

        return {
            "connected": True,
            "version": raw.get("redis_version"),
            "used_memory": raw.get("used_memory_human"),
            "connected_clients": int(raw.get("connected_clients", 0) or 0),
        }

    async def close(self) -> None:
        try:
            await self._client.aclose()
            logger.info("Redis connection closed")
        except RedisError as e:
            logger.error(f"Failed to close Redis connection: {e}")


@asynccontextmanager
async def open_store(url: Optional[str] = None, **kwargs) -> AsyncIterator[RedisStore]:
    """
    Scoped store acquisition: the connection pool is always released.

    Usage:
        async with open_store() as store:
            await store.get("session:abc")
    """
    store = RedisStore.from_url(url, **kwargs)
    try:
        yield store
    finally:
        await store.close()
