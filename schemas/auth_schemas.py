from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from schemas.session_schemas import SessionView
from schemas.token_schemas import TokenPair
from utils.hashing import validate_password_strength


def _check_password(value: str) -> str:
    errors = validate_password_strength(value)
    if errors:
        raise ValueError("; ".join(errors))
    return value


def _check_not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError('Token cannot be empty')
    return value


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, value):
        """
        Password must be 8-128 characters and contain:
        - A lowercase and an uppercase letter
        - A digit
        - A special character
        """
        return _check_password(value)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('Name cannot be empty')
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str

    @field_validator('refresh_token')
    @classmethod
    def validate_token(cls, value):
        return _check_not_blank(value)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str

    @field_validator('token')
    @classmethod
    def validate_token(cls, value):
        return _check_not_blank(value)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, value):
        return _check_password(value)


class VerifyEmailRequest(BaseModel):
    token: str

    @field_validator('token')
    @classmethod
    def validate_token(cls, value):
        return _check_not_blank(value)


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    is_verified: bool
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    tokens: TokenPair


class RefreshResponse(BaseModel):
    message: str
    tokens: TokenPair


class MessageResponse(BaseModel):
    message: str


class LogoutAllResponse(BaseModel):
    message: str
    revoked_tokens: int
    deleted_sessions: int


class SessionListResponse(BaseModel):
    sessions: List[SessionView]
