import secrets
from typing import Optional
from pydantic import ValidationError
from core.redis_store import RedisStore
from schemas.token_schemas import EphemeralTokenData, EphemeralTokenKind
from utils.logger import get_logger
from utils.timestamps import now_ms

logger = get_logger(__name__)

VERIFY_TOKEN_PREFIX = "verify_token:"
RESET_TOKEN_PREFIX = "reset_token:"

TOKEN_PREFIXES = {
    EphemeralTokenKind.EMAIL_VERIFICATION: VERIFY_TOKEN_PREFIX,
    EphemeralTokenKind.PASSWORD_RESET: RESET_TOKEN_PREFIX,
}

TOKEN_TTLS = {
    EphemeralTokenKind.EMAIL_VERIFICATION: 24 * 60 * 60,
    EphemeralTokenKind.PASSWORD_RESET: 60 * 60,
}


def ephemeral_token_key(token: str, kind: EphemeralTokenKind) -> str:
    return f"{TOKEN_PREFIXES[kind]}{token}"


class EphemeralTokenService:
    """
    Single-use tokens for email verification and password reset.

    The token string itself is the key; the record expires on its own
    (24h for verification, 1h for reset) and is deleted when consumed.
    """

    def __init__(self, redis: RedisStore):
        self.redis = redis

    async def create(self, user_id: str, email: str, kind: EphemeralTokenKind) -> str:
        """
        Issue a new token.

        Returns:
            The token string (64 hex chars) to embed in the emailed link

        Raises:
            StoreUnavailable: if Redis cannot be reached
        """
        token = secrets.token_hex(32)
        data = EphemeralTokenData(
            user_id=str(user_id),
            email=email,
            kind=kind,
            created_at=now_ms()
        )

        await self.redis.set(ephemeral_token_key(token, kind), data.model_dump_json(), ttl=TOKEN_TTLS[kind])

        logger.info("Ephemeral token created", extra={"user_id": data.user_id, "kind": kind.value})
        return token

    @staticmethod
    def _parse(raw: Optional[str], kind: EphemeralTokenKind) -> Optional[EphemeralTokenData]:
        if raw is None:
            return None

        try:
            data = EphemeralTokenData.model_validate_json(raw)
        except ValidationError:
            logger.error("Corrupt ephemeral token record", extra={"kind": kind.value})
            return None

        if data.kind != kind:
            logger.warning(
                "Ephemeral token kind mismatch",
                extra={"expected_kind": kind.value, "actual_kind": data.kind.value}
            )
            return None
        return data

    async def verify(self, token: str, kind: EphemeralTokenKind) -> Optional[EphemeralTokenData]:
        """Look a token up without consuming it."""
        raw = await self.redis.get(ephemeral_token_key(token, kind))
        return self._parse(raw, kind)

    async def take(self, token: str, kind: EphemeralTokenKind) -> Optional[EphemeralTokenData]:
        """
        Atomically read and delete a token (GETDEL).

        Of any number of concurrent callers presenting the same token, at
        most one gets the data back.
        """
        raw = await self.redis.getdel(ephemeral_token_key(token, kind))
        data = self._parse(raw, kind)

        if data is not None:
            logger.info("Ephemeral token consumed", extra={"user_id": data.user_id, "kind": kind.value})
        return data

    async def consume(self, token: str, kind: EphemeralTokenKind) -> bool:
        return await self.take(token, kind) is not None

    async def invalidate_all_for_user(self, user_id: str, kind: EphemeralTokenKind) -> int:
        """
        Delete every outstanding token of one kind for a user.
        Used before reissuing a verification email.

        Returns:
            Number of tokens deleted
        """
        user_id = str(user_id)
        stale = []

        async for key in self.redis.scan_iter(match=f"{TOKEN_PREFIXES[kind]}*", count=100):
            data = self._parse(await self.redis.get(key), kind)
            if data is not None and data.user_id == user_id:
                stale.append(key)

        deleted = await self.redis.delete(*stale)

        if deleted:
            logger.info(
                "Ephemeral tokens invalidated",
                extra={"user_id": user_id, "kind": kind.value, "count": deleted}
            )
        return deleted
