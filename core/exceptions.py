"""
Error taxonomy for the token, session and rate-limit core.

Token verification does not raise these: it returns a tagged result
(see services.token_service). The exception classes exist for the places
where a failure has to cross a call boundary.
"""

from enum import Enum
from typing import Dict, Optional


class TokenError(str, Enum):
    """Why a token failed verification."""
    EXPIRED = "expired"
    INVALID = "invalid"


class AuthCoreError(Exception):
    """Base class for all errors raised by the auth core."""

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class TokenExpired(AuthCoreError):
    pass


class TokenInvalid(AuthCoreError):
    """Bad signature, malformed token, or the wrong kind of token."""
    pass


class TokenReuseDetected(AuthCoreError):
    """
    A refresh token that was already rotated away has been presented again.

    Internal signal only: the ledger reacts by invalidating the whole
    token family and the caller just sees a failed rotation.
    """

    def __init__(self, family_id: Optional[str] = None, user_id: Optional[str] = None):
        super().__init__("Refresh token reuse detected")
        self.family_id = family_id
        self.user_id = user_id


class SessionNotFound(AuthCoreError):
    pass


class RateLimited(AuthCoreError):
    """Carries the response headers so the handler can report the window."""

    def __init__(
        self,
        retry_after: int,
        message: str = "Too many requests. Please try again later.",
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(message)
        self.retry_after = retry_after
        self.headers = headers or {}


class StoreUnavailable(AuthCoreError):
    """The shared key-value store could not be reached or timed out."""
    pass
