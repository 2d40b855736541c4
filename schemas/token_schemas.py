from enum import Enum
from typing import Optional
from pydantic import BaseModel


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Decoded JWT claims. `issued_at`/`expires_at` are epoch seconds."""
    user_id: str
    email: str
    kind: TokenKind
    issued_at: int
    expires_at: int
    jti: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshTokenRecord(BaseModel):
    """
    Ledger entry for one issued refresh token, stored at
    refresh_token:<sha256 of the token>. Timestamps are epoch milliseconds.
    """
    user_id: str
    email: str
    family_id: str
    rotation_count: int = 0
    created_at: int
    last_rotated_at: int


class StoredToken(BaseModel):
    family_id: str
    token_hash: str


class EphemeralTokenKind(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class EphemeralTokenData(BaseModel):
    user_id: str
    email: str
    kind: EphemeralTokenKind
    created_at: int
