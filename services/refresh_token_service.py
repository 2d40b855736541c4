"""
Refresh token ledger: rotation with reuse detection.

Every refresh token ever issued is tracked by the SHA-256 of its value and
grouped into a family, one family per login lineage. Presenting a token that
has already been rotated away is treated as theft and kills the whole
family, which forces the legitimate user to log in again.
"""

import uuid
from typing import Optional
from pydantic import ValidationError
from core.exceptions import TokenReuseDetected
from core.logging_config import get_security_logger
from core.redis_store import RedisStore
from schemas.session_schemas import SessionMetadata
from schemas.token_schemas import RefreshTokenRecord, StoredToken, TokenPair
from services.session_service import SessionService
from services.token_service import TokenService, Err, hash_token
from utils.logger import get_logger
from utils.timestamps import now_ms

logger = get_logger(__name__)
security_logger = get_security_logger()

REFRESH_TOKEN_PREFIX = "refresh_token:"
TOKEN_FAMILY_PREFIX = "token_family:"
ROTATED_TOKEN_PREFIX = "rotated_token:"
FAMILY_ID_PREFIX = "fam_"


# Check-and-advance in one step. Two concurrent rotations of the same token
# cannot both see it as the live member of its family.
#
# KEYS: old record, family set, new record, tombstone for the old hash
# ARGV: old hash, new hash, new record JSON, ttl seconds, family id
ROTATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 'MISSING'
end
if redis.call('SISMEMBER', KEYS[2], ARGV[1]) == 0 then
    return 'REUSED'
end
redis.call('SET', KEYS[3], ARGV[3], 'EX', ARGV[4])
redis.call('SADD', KEYS[2], ARGV[2])
redis.call('EXPIRE', KEYS[2], ARGV[4])
redis.call('SREM', KEYS[2], ARGV[1])
redis.call('DEL', KEYS[1])
redis.call('SET', KEYS[4], ARGV[5], 'EX', ARGV[4])
return 'OK'
"""


def refresh_token_key(token_hash: str) -> str:
    return f"{REFRESH_TOKEN_PREFIX}{token_hash}"


def token_family_key(family_id: str) -> str:
    return f"{TOKEN_FAMILY_PREFIX}{family_id}"


def rotated_token_key(token_hash: str) -> str:
    return f"{ROTATED_TOKEN_PREFIX}{token_hash}"


def generate_family_id() -> str:
    return f"{FAMILY_ID_PREFIX}{uuid.uuid4().hex}"


class RefreshTokenLedger:
    """
    Tracks refresh tokens and their families, and orchestrates rotation.

    Composes the token codec (to verify and mint tokens) and the session
    store (sessions are keyed by the refresh token's hash). All bookkeeping
    lives in Redis; store failures propagate so the caller fails closed.
    """

    def __init__(self, redis: RedisStore, tokens: TokenService, sessions: SessionService):
        self.redis = redis
        self.tokens = tokens
        self.sessions = sessions
        self._rotate_script = redis.register_script(ROTATE_SCRIPT)

    async def _get_record(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        raw = await self.redis.get(refresh_token_key(token_hash))
        if raw is None:
            return None
        try:
            return RefreshTokenRecord.model_validate_json(raw)
        except ValidationError:
            logger.error("Corrupt refresh token record", extra={"token_hash": token_hash})
            return None

    async def store(
        self,
        refresh_token: str,
        user_id: str,
        email: str,
        family_id: Optional[str] = None
    ) -> StoredToken:
        """
        Record a freshly issued refresh token.

        Args:
            refresh_token: The refresh token string
            user_id: User ID
            email: User email
            family_id: Existing family to join (default: start a new one)

        Returns:
            StoredToken with the family id and token hash
        """
        token_hash = hash_token(refresh_token)
        family_id = family_id or generate_family_id()
        ttl = self.tokens.refresh_ttl_seconds
        now = now_ms()

        record = RefreshTokenRecord(
            user_id=str(user_id),
            email=email,
            family_id=family_id,
            rotation_count=0,
            created_at=now,
            last_rotated_at=now
        )

        await self.redis.set(refresh_token_key(token_hash), record.model_dump_json(), ttl=ttl)
        await self.redis.sadd(token_family_key(family_id), token_hash)
        await self.redis.expire(token_family_key(family_id), ttl)

        return StoredToken(family_id=family_id, token_hash=token_hash)

    async def issue_for_login(
        self,
        user_id: str,
        email: str,
        metadata: Optional[SessionMetadata] = None
    ) -> TokenPair:
        """
        Login/registration flow: mint a pair, open a new family, record the session.
        """
        pair = self.tokens.issue_pair(str(user_id), email)
        stored = await self.store(pair.refresh_token, user_id, email)
        await self.sessions.create(str(user_id), email, stored.token_hash, metadata)

        logger.info(
            "Token family opened",
            extra={"user_id": str(user_id), "family_id": stored.family_id}
        )
        return pair

    async def rotate(
        self,
        old_refresh_token: str,
        metadata: Optional[SessionMetadata] = None
    ) -> Optional[TokenPair]:
        """
        Exchange a refresh token for a new access + refresh pair.

        Returns None if the token is invalid or expired, or if it has already
        been used (in which case its whole family is invalidated first).

        Raises:
            StoreUnavailable: if Redis cannot be reached
        """
        result = self.tokens.verify_refresh(old_refresh_token)
        if isinstance(result, Err):
            logger.info("Refresh token rejected", extra={"reason": result.error.value})
            return None

        claims = result.claims
        old_hash = hash_token(old_refresh_token)

        try:
            return await self._advance(old_hash, claims.user_id, claims.email, metadata)
        except TokenReuseDetected as e:
            security_logger.warning(
                "Refresh token reuse detected",
                extra={
                    "event": "token_reuse_detected",
                    "user_id": e.user_id,
                    "family_id": e.family_id,
                    "token_hash": old_hash
                }
            )
            if e.family_id:
                await self.invalidate_family(e.family_id)

            # A stale record outside its family set would survive the sweep above
            await self.redis.delete(refresh_token_key(old_hash))
            await self.sessions.delete(old_hash)
            return None

    async def _advance(
        self,
        old_hash: str,
        user_id: str,
        email: str,
        metadata: Optional[SessionMetadata]
    ) -> TokenPair:
        record = await self._get_record(old_hash)

        if record is None:
            # Consumed tokens leave a tombstone pointing at their family
            family_id = await self.redis.get(rotated_token_key(old_hash))
            raise TokenReuseDetected(family_id=family_id, user_id=user_id)

        pair = self.tokens.issue_pair(user_id, email)
        new_hash = hash_token(pair.refresh_token)
        ttl = self.tokens.refresh_ttl_seconds

        new_record = record.model_copy(update={
            "rotation_count": record.rotation_count + 1,
            "last_rotated_at": now_ms()
        })

        outcome = await self.redis.run_script(
            self._rotate_script,
            keys=[
                refresh_token_key(old_hash),
                token_family_key(record.family_id),
                refresh_token_key(new_hash),
                rotated_token_key(old_hash),
            ],
            args=[old_hash, new_hash, new_record.model_dump_json(), ttl, record.family_id]
        )

        if outcome != "OK":
            raise TokenReuseDetected(family_id=record.family_id, user_id=record.user_id)

        old_session = await self.sessions.get(old_hash)
        if metadata is None and old_session is not None:
            metadata = SessionMetadata(
                ip_address=old_session.ip_address,
                user_agent=old_session.user_agent
            )

        await self.sessions.delete(old_hash)
        await self.sessions.create(record.user_id, record.email, new_hash, metadata)

        # A replay may have killed the family after the script ran. Sweeps drop
        # the record before the session, so a missing record here means the
        # sweep already passed this session by.
        if not await self.redis.exists(refresh_token_key(new_hash)):
            await self.sessions.delete(new_hash)
            raise TokenReuseDetected(family_id=record.family_id, user_id=record.user_id)

        logger.info(
            "Refresh token rotated",
            extra={
                "user_id": record.user_id,
                "family_id": record.family_id,
                "rotation_count": new_record.rotation_count
            }
        )
        return pair

    async def invalidate_family(self, family_id_or_hash: str) -> int:
        """
        Delete every token in a family, their sessions, and the family set.

        Args:
            family_id_or_hash: A family id (fam_...) or the hash of any token
                in the family, live or already rotated away

        Returns:
            Number of token records deleted
        """
        family_id = family_id_or_hash

        if not family_id_or_hash.startswith(FAMILY_ID_PREFIX):
            record = await self._get_record(family_id_or_hash)
            if record is not None:
                family_id = record.family_id
            else:
                family_id = await self.redis.get(rotated_token_key(family_id_or_hash))
                if family_id is None:
                    logger.warning("Cannot resolve token family", extra={"token_hash": family_id_or_hash})
                    return 0

        members = await self.redis.smembers(token_family_key(family_id))

        for token_hash in members:
            await self.redis.delete(refresh_token_key(token_hash))
            await self.sessions.delete(token_hash)

        await self.redis.delete(token_family_key(family_id))

        security_logger.warning(
            "Token family invalidated",
            extra={"event": "token_family_invalidated", "family_id": family_id, "count": len(members)}
        )
        return len(members)

    async def revoke(self, refresh_token: str) -> bool:
        """
        Revoke one refresh token (logout on one device); siblings are untouched.

        Returns:
            True if the token was known and has been removed
        """
        return await self.revoke_hash(hash_token(refresh_token))

    async def revoke_hash(self, token_hash: str) -> bool:
        """Same as revoke, for callers that only hold the hash (a session id)."""
        record = await self._get_record(token_hash)

        if record is None:
            return False

        await self.redis.srem(token_family_key(record.family_id), token_hash)
        await self.redis.delete(refresh_token_key(token_hash))
        await self.sessions.delete(token_hash)

        logger.info("Refresh token revoked", extra={"user_id": record.user_id, "family_id": record.family_id})
        return True

    async def revoke_all(self, user_id: str) -> int:
        """
        Revoke every refresh token of a user (log out everywhere).

        Scans the whole refresh_token: keyspace, so keep it off hot paths.

        Returns:
            Number of tokens revoked
        """
        user_id = str(user_id)
        matches = []

        async for key in self.redis.scan_iter(match=f"{REFRESH_TOKEN_PREFIX}*", count=100):
            token_hash = key[len(REFRESH_TOKEN_PREFIX):]
            record = await self._get_record(token_hash)
            if record is not None and record.user_id == user_id:
                matches.append((token_hash, record))

        for token_hash, record in matches:
            await self.redis.delete(refresh_token_key(token_hash))
            await self.redis.srem(token_family_key(record.family_id), token_hash)
            await self.sessions.delete(token_hash)

        security_logger.info(
            "All refresh tokens revoked",
            extra={"event": "refresh_tokens_revoked", "user_id": user_id, "count": len(matches)}
        )
        return len(matches)
