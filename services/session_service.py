from typing import List, Optional
from pydantic import ValidationError
from core.config import settings
from core.redis_store import RedisStore
from schemas.session_schemas import SessionData, SessionMetadata, SessionView
from utils.logger import get_logger
from utils.timestamps import now_ms

logger = get_logger(__name__)

SESSION_PREFIX = "session:"
USER_SESSIONS_PREFIX = "user_sessions:"


def session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def user_sessions_key(user_id: str) -> str:
    return f"{USER_SESSIONS_PREFIX}{user_id}"


class SessionService:
    """
    Logged-in devices, one Redis record per session plus a per-user index set.

    Every mutation keeps the index in step with the records so bulk
    revocation never needs a keyspace scan. Store failures are not
    swallowed: a session that cannot be written or read is a failed login.
    """

    def __init__(self, redis: RedisStore, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.SESSION_TIMEOUT_SECONDS

    async def create(
        self,
        user_id: str,
        email: str,
        session_id: str,
        metadata: Optional[SessionMetadata] = None
    ) -> bool:
        """
        Create a new session for a user.

        Args:
            user_id: The user's ID
            email: The user's email
            session_id: Session identifier (hash of the refresh token)
            metadata: Optional IP address / user agent

        Returns:
            True once both the record and the index entry are written

        Raises:
            StoreUnavailable: if Redis cannot be reached
        """
        now = now_ms()
        metadata = metadata or SessionMetadata()
        session = SessionData(
            user_id=str(user_id),
            email=email,
            created_at=now,
            last_activity=now,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent
        )

        await self.redis.set(session_key(session_id), session.model_dump_json(), ttl=self.ttl_seconds)
        await self.redis.sadd(user_sessions_key(session.user_id), session_id)
        await self.redis.expire(user_sessions_key(session.user_id), self.ttl_seconds)

        logger.debug("Session created", extra={"user_id": session.user_id, "session_id": session_id[:8]})
        return True

    async def get(self, session_id: str) -> Optional[SessionData]:
        raw = await self.redis.get(session_key(session_id))
        if raw is None:
            return None

        try:
            return SessionData.model_validate_json(raw)
        except ValidationError:
            logger.error("Corrupt session record", extra={"session_id": session_id[:8]})
            return None

    async def exists(self, session_id: str) -> bool:
        return await self.redis.exists(session_key(session_id))

    async def touch(self, session_id: str) -> bool:
        """Refresh lastActivity and push the TTL out again."""
        session = await self.get(session_id)
        if session is None:
            return False

        session.last_activity = now_ms()
        await self.redis.set(session_key(session_id), session.model_dump_json(), ttl=self.ttl_seconds)
        await self.redis.expire(user_sessions_key(session.user_id), self.ttl_seconds)
        return True

    async def delete(self, session_id: str) -> bool:
        session = await self.get(session_id)
        if session is None:
            return False

        await self.redis.delete(session_key(session_id))
        await self.redis.srem(user_sessions_key(session.user_id), session_id)

        logger.debug("Session deleted", extra={"user_id": session.user_id, "session_id": session_id[:8]})
        return True

    async def delete_all(self, user_id: str) -> int:
        """
        Delete every session of a user.

        Returns:
            Number of session records actually deleted
        """
        index_key = user_sessions_key(user_id)
        session_ids = await self.redis.smembers(index_key)

        if not session_ids:
            return 0

        deleted = await self.redis.delete(*(session_key(sid) for sid in session_ids))
        await self.redis.delete(index_key)

        logger.info(
            "All user sessions deleted",
            extra={"user_id": str(user_id), "count": deleted}
        )
        return deleted

    async def list_active(self, user_id: str) -> List[SessionView]:
        """
        All live sessions of a user.

        Index entries whose record has already expired are removed on the
        way, so the caller never sees a phantom session.
        """
        index_key = user_sessions_key(user_id)
        sessions: List[SessionView] = []

        for session_id in await self.redis.smembers(index_key):
            session = await self.get(session_id)
            if session is None:
                await self.redis.srem(index_key, session_id)
                continue
            sessions.append(SessionView(session_id=session_id, **session.model_dump()))

        sessions.sort(key=lambda s: s.created_at)
        return sessions

    async def prune_stale(self, user_id: str) -> int:
        """
        Drop index entries whose session record no longer exists.

        Returns:
            Number of stale ids removed
        """
        index_key = user_sessions_key(user_id)
        stale = [
            session_id for session_id in await self.redis.smembers(index_key)
            if not await self.exists(session_id)
        ]

        await self.redis.srem(index_key, *stale)

        if stale:
            logger.debug("Pruned stale session ids", extra={"user_id": str(user_id), "count": len(stale)})
        return len(stale)
