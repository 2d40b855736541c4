from fastapi import APIRouter, HTTPException, Depends, Request, BackgroundTasks
from starlette import status
from utils.deps import (db_dependency, user_dependency, optional_user_dependency, ledger_dependency,
session_service_dependency, ephemeral_tokens_dependency)
from schemas.auth_schemas import (RegisterRequest, LoginRequest, RefreshTokenRequest, LogoutRequest,
PasswordResetRequest, ResetPasswordRequest, VerifyEmailRequest, ResendVerificationRequest,
UserResponse, AuthResponse, RefreshResponse, MessageResponse, LogoutAllResponse, SessionListResponse)
from schemas.session_schemas import SessionMetadata
from schemas.token_schemas import EphemeralTokenKind
from core.exceptions import SessionNotFound
from services.auth_service import AuthService
from services.email_service import send_email, EmailKind
from services.rate_limit_service import RateLimitPresets
from middleware.rate_limiter import rate_limit, get_client_ip
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


def session_metadata(request: Request) -> SessionMetadata:
    return SessionMetadata(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent")
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse,
             dependencies=[Depends(rate_limit("auth:register", RateLimitPresets.AUTH_REGISTER))])
async def register(request: Request, body: RegisterRequest, db: db_dependency, bg: BackgroundTasks,
                   ledger: ledger_dependency, ephemeral: ephemeral_tokens_dependency):
    user = AuthService.create_user(body, db)

    verification_token = await ephemeral.create(str(user.id), user.email, EphemeralTokenKind.EMAIL_VERIFICATION)
    tokens = await ledger.issue_for_login(str(user.id), user.email, session_metadata(request))

    bg.add_task(send_email, EmailKind.VERIFICATION, user.email, {"name": user.name, "token": verification_token})
    bg.add_task(send_email, EmailKind.WELCOME, user.email, {"name": user.name})

    logger.info(
        "User registered successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return AuthResponse(
        message="Registration successful",
        user=UserResponse.model_validate(user),
        tokens=tokens
    )


@router.post("/login", response_model=AuthResponse,
             dependencies=[Depends(rate_limit("auth:login", RateLimitPresets.AUTH_LOGIN))])
async def login(request: Request, body: LoginRequest, db: db_dependency, ledger: ledger_dependency):
    user = AuthService.authenticate_user(body.email, body.password, db)

    tokens = await ledger.issue_for_login(str(user.id), user.email, session_metadata(request))

    logger.info(
        "User logged in successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        tokens=tokens
    )


@router.post("/refresh", response_model=RefreshResponse,
             dependencies=[Depends(rate_limit("auth:token-refresh", RateLimitPresets.TOKEN_REFRESH))])
async def refresh_token(request: Request, body: RefreshTokenRequest, ledger: ledger_dependency):
    """
    Exchange a refresh token for a new pair. The presented token is spent;
    presenting it again logs out its whole lineage.
    """
    tokens = await ledger.rotate(body.refresh_token, session_metadata(request))

    if tokens is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid or expired refresh token")

    logger.info("Access token refreshed")

    return RefreshResponse(message="Token refreshed successfully", tokens=tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(body: LogoutRequest, ledger: ledger_dependency, user: optional_user_dependency):
    """
    Revoke one refresh token and its session. Sibling devices stay logged in.
    """
    revoked = False
    if body.refresh_token:
        revoked = await ledger.revoke(body.refresh_token)

    logger.info(
        "User logged out",
        extra={"user_id": user.user_id if user else None, "revoked": revoked}
    )

    return MessageResponse(message="Logout successful")


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(user: user_dependency, ledger: ledger_dependency, sessions: session_service_dependency):
    revoked_tokens = await ledger.revoke_all(user.user_id)
    deleted_sessions = await sessions.delete_all(user.user_id)

    logger.info(
        "User logged out everywhere",
        extra={"user_id": user.user_id, "revoked_tokens": revoked_tokens}
    )

    return LogoutAllResponse(
        message="Logged out from all devices",
        revoked_tokens=revoked_tokens,
        deleted_sessions=deleted_sessions
    )


@router.post("/request-password-reset", response_model=MessageResponse,
             dependencies=[Depends(rate_limit("auth:password-reset-request", RateLimitPresets.PASSWORD_RESET_REQUEST))])
async def request_password_reset(body: PasswordResetRequest, db: db_dependency, bg: BackgroundTasks,
                                 ephemeral: ephemeral_tokens_dependency):
    generic = MessageResponse(message="If the email exists, a password reset link has been sent")

    user = AuthService.get_user_by_email(db, body.email)
    if not user:
        logger.info("Password reset requested for non-existent email",
        extra={"email": body.email})
        return generic

    reset_token = await ephemeral.create(str(user.id), user.email, EphemeralTokenKind.PASSWORD_RESET)
    bg.add_task(send_email, EmailKind.PASSWORD_RESET, user.email, {"name": user.name, "token": reset_token})

    logger.info(
        "Password reset email queued",
        extra={"user_id": user.id, "email": user.email}
    )

    return generic


@router.post("/reset-password", response_model=MessageResponse,
             dependencies=[Depends(rate_limit("auth:password-reset-confirm", RateLimitPresets.PASSWORD_RESET_CONFIRM))])
async def reset_password(body: ResetPasswordRequest, db: db_dependency, bg: BackgroundTasks,
                         ephemeral: ephemeral_tokens_dependency, ledger: ledger_dependency,
                         sessions: session_service_dependency):
    """
    Redeem a reset token. Every session and refresh token of the user is
    revoked, so all devices must log in again.
    """
    token_data = await ephemeral.take(body.token, EphemeralTokenKind.PASSWORD_RESET)

    if token_data is None:
        logger.warning("Password reset failed - invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired password reset token"
        )

    user = AuthService.update_password(db, token_data.user_id, body.new_password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired password reset token"
        )

    await ledger.revoke_all(str(user.id))
    await sessions.delete_all(str(user.id))

    bg.add_task(send_email, EmailKind.PASSWORD_CHANGED, user.email, {"name": user.name})

    logger.info(
        "Password reset successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return MessageResponse(message="Password reset successful")


@router.post("/verify-email", response_model=MessageResponse,
             dependencies=[Depends(rate_limit("auth:email-verification", RateLimitPresets.EMAIL_VERIFICATION))])
async def verify_email(body: VerifyEmailRequest, db: db_dependency, ephemeral: ephemeral_tokens_dependency):
    token_data = await ephemeral.take(body.token, EphemeralTokenKind.EMAIL_VERIFICATION)

    if token_data is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired verification token")

    user = AuthService.mark_verified(db, token_data.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired verification token")

    logger.info(
        "Email verified successfully",
        extra={"user_id": user.id, "email": user.email}
    )

    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse,
             dependencies=[Depends(rate_limit("auth:email-verification", RateLimitPresets.EMAIL_VERIFICATION))])
async def resend_verification(body: ResendVerificationRequest, db: db_dependency, bg: BackgroundTasks,
                              ephemeral: ephemeral_tokens_dependency):
    generic = MessageResponse(message="If the email exists, a verification link has been sent")

    user = AuthService.get_user_by_email(db, body.email)
    if not user or user.is_verified:
        return generic

    await ephemeral.invalidate_all_for_user(str(user.id), EphemeralTokenKind.EMAIL_VERIFICATION)
    verification_token = await ephemeral.create(str(user.id), user.email, EphemeralTokenKind.EMAIL_VERIFICATION)

    bg.add_task(send_email, EmailKind.VERIFICATION, user.email, {"name": user.name, "token": verification_token})

    return generic


@router.get("/me", response_model=UserResponse)
async def get_me(user: user_dependency, db: db_dependency):
    model = AuthService.get_user_by_id(db, user.user_id)

    if not model or not model.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return model


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(user: user_dependency, sessions: session_service_dependency):
    return SessionListResponse(sessions=await sessions.list_active(user.user_id))


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(session_id: str, user: user_dependency, ledger: ledger_dependency,
                         sessions: session_service_dependency):
    """Log out one of the caller's devices by session id."""
    session = await sessions.get(session_id)

    # Other users' sessions are indistinguishable from missing ones
    if session is None or session.user_id != user.user_id:
        raise SessionNotFound(session_id[:8])

    await ledger.revoke_hash(session_id)
    await sessions.delete(session_id)

    logger.info("Session revoked", extra={"user_id": user.user_id})
    return MessageResponse(message="Session revoked")
