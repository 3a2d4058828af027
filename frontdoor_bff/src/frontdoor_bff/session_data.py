# src/frontdoor_bff/session_data.py

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator


class AuthTokens(BaseModel):
    """
    Salesforce tokens kept server-side for a browser session.
    An instance is always a complete {access_token, instance_url} pair.
    """
    access_token: str
    instance_url: str
    refresh_token: Optional[str] = None
    identity_id: Optional[str] = None
    issued_at: Optional[datetime] = None

    @field_validator("access_token")
    @classmethod
    def non_empty_token(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("access_token must not be empty")
        return v

    @field_validator("instance_url")
    @classmethod
    def absolute_origin(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("instance_url must be an absolute http(s) URL")
        return v.rstrip("/")

    @field_validator("issued_at", mode="before")
    @classmethod
    def parse_epoch_millis(cls, v: Any) -> Any:
        # Salesforce sends issued_at as a string of epoch milliseconds
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            return v
        if isinstance(v, str) and not v.isdigit():
            return None
        try:
            return datetime.fromtimestamp(int(v) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # An out-of-range timestamp is dropped, not fatal
            return None


class SessionData(BaseModel):
    """
    Represents the data stored server-side for a user session.
    Only the signed session ID is stored in the browser cookie.
    """
    auth_tokens: Optional[AuthTokens] = None
    created_at: datetime
    expires_at: datetime

    @property
    def is_authenticated(self) -> bool:
        return self.auth_tokens is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


def session_state(session: Optional[SessionData]) -> Dict[str, Any]:
    """Authentication status safe to hand to the browser (never includes tokens)."""
    if session is None or session.auth_tokens is None:
        return {"authenticated": False}
    return {"authenticated": True, "instanceUrl": session.auth_tokens.instance_url}
