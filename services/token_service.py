import secrets
import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import ValidationError
from core.config import settings
from core.exceptions import TokenError, TokenExpired, TokenInvalid
from schemas.token_schemas import TokenClaims, TokenKind, TokenPair
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Ok:
    claims: TokenClaims


@dataclass(frozen=True)
class Err:
    error: TokenError

    def exception(self) -> TokenExpired | TokenInvalid:
        if self.error == TokenError.EXPIRED:
            return TokenExpired("Token expired")
        return TokenInvalid("Token invalid")


VerifyResult = Ok | Err


def hash_token(token: str) -> str:
    """SHA-256 hex digest of the whole token; used as its storage key."""
    return hashlib.sha256(token.encode()).hexdigest()


class TokenService:
    """
    Signs and verifies JWT access and refresh tokens.

    Stateless apart from the secrets. Access and refresh tokens are signed
    with different keys, and every token carries a `type` claim that is
    checked on verification, so one kind can never stand in for the other.
    """

    def __init__(
        self,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_expires: Optional[timedelta] = None,
        refresh_expires: Optional[timedelta] = None,
    ):
        self.access_secret = access_secret or settings.JWT_SECRET
        self.refresh_secret = refresh_secret or settings.JWT_REFRESH_SECRET
        self.algorithm = algorithm or settings.ALGORITHM
        self.access_expires = access_expires or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_expires = refresh_expires or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    @property
    def refresh_ttl_seconds(self) -> int:
        """Lifetime of a refresh token in whole seconds (ledger TTL)."""
        return int(self.refresh_expires.total_seconds())

    def _encode(self, user_id: str, email: str, kind: TokenKind, secret: str, expires_delta: timedelta) -> str:
        now = datetime.now(timezone.utc)

        payload = {
            "sub": str(user_id),
            "email": email,
            "type": kind.value,
            "jti": secrets.token_urlsafe(16),
            "iat": now,
            "exp": now + expires_delta
        }

        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access(self, user_id: str, email: str, expires_delta: timedelta = None) -> str:
        """
        Creates a JWT access token.

        Args:
            user_id: User's ID
            email: User's email
            expires_delta: Token lifetime (default: ACCESS_TOKEN_EXPIRE_MINUTES)

        Returns:
            JWT access token string
        """
        return self._encode(
            user_id, email, TokenKind.ACCESS, self.access_secret,
            expires_delta if expires_delta is not None else self.access_expires
        )

    def issue_refresh(self, user_id: str, email: str, expires_delta: timedelta = None) -> str:
        """
        Creates a JWT refresh token.

        Args:
            user_id: User's ID
            email: User's email
            expires_delta: Token lifetime (default: REFRESH_TOKEN_EXPIRE_DAYS)

        Returns:
            JWT refresh token string
        """
        return self._encode(
            user_id, email, TokenKind.REFRESH, self.refresh_secret,
            expires_delta if expires_delta is not None else self.refresh_expires
        )

    def issue_pair(self, user_id: str, email: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access(user_id, email),
            refresh_token=self.issue_refresh(user_id, email)
        )

    def _verify(self, token: str, secret: str, expected: TokenKind) -> VerifyResult:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.debug("Token verification failed - expired", extra={"expected_kind": expected.value})
            return Err(TokenError.EXPIRED)
        except JWTError as e:
            logger.debug(
                "Token verification failed - invalid",
                extra={"expected_kind": expected.value, "error": str(e)}
            )
            return Err(TokenError.INVALID)

        claims = self._claims_from_payload(payload)
        if claims is None:
            logger.debug("Token verification failed - incomplete claims", extra={"expected_kind": expected.value})
            return Err(TokenError.INVALID)

        # Type confusion: a well-formed token of the other kind
        if claims.kind != expected:
            logger.warning(
                "Token presented with wrong type",
                extra={"expected_kind": expected.value, "actual_kind": claims.kind.value, "user_id": claims.user_id}
            )
            return Err(TokenError.INVALID)

        return Ok(claims)

    def verify_access(self, token: str) -> VerifyResult:
        return self._verify(token, self.access_secret, TokenKind.ACCESS)

    def verify_refresh(self, token: str) -> VerifyResult:
        return self._verify(token, self.refresh_secret, TokenKind.REFRESH)

    def decode_unsafe(self, token: str) -> Optional[TokenClaims]:
        """
        Decode a token WITHOUT checking its signature or expiry.
        Debugging only; never use the result to authorize anything.
        """
        try:
            payload = jwt.get_unverified_claims(token)
        except JWTError:
            return None
        return self._claims_from_payload(payload)

    @staticmethod
    def _claims_from_payload(payload: dict) -> Optional[TokenClaims]:
        try:
            return TokenClaims(
                user_id=payload["sub"],
                email=payload["email"],
                kind=payload["type"],
                issued_at=payload["iat"],
                expires_at=payload["exp"],
                jti=payload.get("jti")
            )
        except (KeyError, TypeError, ValidationError):
            return None
