from core.database import SessionLocal
from typing import Annotated, Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from starlette import status
from core.redis_store import RedisStore
from schemas.token_schemas import TokenClaims
from services.token_service import TokenService, Err
from services.session_service import SessionService
from services.refresh_token_service import RefreshTokenLedger
from services.ephemeral_token_service import EphemeralTokenService
from services.rate_limit_service import RateLimiter
from utils.logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

db_dependency = Annotated[Session, Depends(get_db)]


def get_store(request: Request) -> RedisStore:
    """The store handle opened in the app lifespan."""
    return request.app.state.store

store_dependency = Annotated[RedisStore, Depends(get_store)]


def get_token_service() -> TokenService:
    return TokenService()

token_service_dependency = Annotated[TokenService, Depends(get_token_service)]


def get_session_service(store: store_dependency) -> SessionService:
    return SessionService(store)

session_service_dependency = Annotated[SessionService, Depends(get_session_service)]


def get_ledger(
    store: store_dependency,
    tokens: token_service_dependency,
    sessions: session_service_dependency
) -> RefreshTokenLedger:
    return RefreshTokenLedger(store, tokens, sessions)

ledger_dependency = Annotated[RefreshTokenLedger, Depends(get_ledger)]


def get_ephemeral_tokens(store: store_dependency) -> EphemeralTokenService:
    return EphemeralTokenService(store)

ephemeral_tokens_dependency = Annotated[EphemeralTokenService, Depends(get_ephemeral_tokens)]


def get_rate_limiter(store: store_dependency) -> RateLimiter:
    return RateLimiter(store)


def get_current_user(
    tokens: token_service_dependency,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> TokenClaims:
    """
    Resolve the Bearer access token to its claims.

    Raises TokenExpired or TokenInvalid; both become the same generic 401.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"}
        )

    result = tokens.verify_access(credentials.credentials)

    if isinstance(result, Err):
        logger.info("Bearer token rejected", extra={"reason": result.error.value})
        raise result.exception()

    return result.claims

user_dependency = Annotated[TokenClaims, Depends(get_current_user)]


def get_optional_user(
    tokens: token_service_dependency,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)]
) -> Optional[TokenClaims]:
    """Like get_current_user, but a missing or bad token just means anonymous."""
    if credentials is None:
        return None

    result = tokens.verify_access(credentials.credentials)
    if isinstance(result, Err):
        return None
    return result.claims

optional_user_dependency = Annotated[Optional[TokenClaims], Depends(get_optional_user)]
