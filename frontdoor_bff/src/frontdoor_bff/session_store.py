# src/frontdoor_bff/session_store.py

import base64
import hashlib
import hmac
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from .session_data import AuthTokens, SessionData

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """
    Keyed storage for SessionData records.

    Records expire a fixed TTL after they were last written (each write is a
    fresh cookie issuance); reading a record never extends it.
    """

    def new_session_id(self) -> str:
        return secrets.token_urlsafe(32)

    def get(self, session_id: str) -> Optional[SessionData]:
        raise NotImplementedError

    def save(self, session_id: str, auth_tokens: Optional[AuthTokens]) -> SessionData:
        raise NotImplementedError

    def destroy(self, session_id: str) -> None:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    """Process-local store for single-instance deployments."""

    def __init__(self, ttl_seconds: int, clock: Optional[Clock] = None):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or _utcnow
        self._sessions: Dict[str, SessionData] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, session_id: str) -> Optional[SessionData]:
        now = self._clock()
        with self._lock:
            record = self._sessions.get(session_id)
            if record is not None and record.is_expired(now):
                del self._sessions[session_id]
                return None
            return record

    def save(self, session_id: str, auth_tokens: Optional[AuthTokens]) -> SessionData:
        now = self._clock()
        # Overwrites any previous record under this id, never merges
        record = SessionData(auth_tokens=auth_tokens, created_at=now, expires_at=now + self._ttl)
        with self._lock:
            self._purge_expired(now)
            self._sessions[session_id] = record
        return record

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def _purge_expired(self, now: datetime) -> None:
        expired = [sid for sid, record in self._sessions.items() if record.is_expired(now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("SESSION: purged %d expired session(s)", len(expired))


class SessionCookieSigner:
    """Signs session ids so a browser can't forge or guess another session's cookie."""

    def __init__(self, secret: str):
        self._key = secret.encode("utf-8")

    def _signature(self, session_id: str) -> str:
        digest = hmac.new(self._key, session_id.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def sign(self, session_id: str) -> str:
        return f"{session_id}.{self._signature(session_id)}"

    def unsign(self, cookie_value: str) -> Optional[str]:
        session_id, sep, signature = cookie_value.rpartition(".")
        if not sep or not session_id:
            return None
        if not hmac.compare_digest(signature, self._signature(session_id)):
            return None
        return session_id
