from typing import Optional
from pydantic import BaseModel


class SessionMetadata(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class SessionData(BaseModel):
    """
    One logged-in device, stored at session:<session_id>.
    Timestamps are epoch milliseconds.
    """
    user_id: str
    email: str
    created_at: int
    last_activity: int
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class SessionView(SessionData):
    session_id: str
