# src/frontdoor_bff/session_middleware.py

import logging
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .config import Settings
from .session_data import AuthTokens, SessionData
from .session_store import SessionCookieSigner, SessionStore

logger = logging.getLogger(__name__)


class SessionHandle:
    """
    Per-request view of the browser's session.
    Writes are deferred until the response is committed by SessionMiddleware.
    """

    def __init__(self, session_id: Optional[str], data: Optional[SessionData]):
        self.session_id = session_id
        self.data = data
        self._pending_tokens: Optional[AuthTokens] = None
        self._destroy_requested = False

    @property
    def is_authenticated(self) -> bool:
        return self.data is not None and self.data.is_authenticated

    def authenticate(self, tokens: AuthTokens) -> None:
        self._pending_tokens = tokens
        self._destroy_requested = False

    def destroy(self) -> None:
        self._pending_tokens = None
        self._destroy_requested = True


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, store: SessionStore, settings: Settings):
        super().__init__(app)
        self.store = store
        self.settings = settings
        self.signer = SessionCookieSigner(settings.SESSION_SECRET)

    async def dispatch(self, request, call_next):
        handle = self._load(request)
        request.state.session = handle
        response: StarletteResponse = await call_next(request)
        if handle._pending_tokens is not None:
            self._issue(handle, response)
        elif handle._destroy_requested:
            self._clear(handle, response)
        return response

    def _load(self, request: Request) -> SessionHandle:
        cookie_value = request.cookies.get(self.settings.SESSION_COOKIE_NAME)
        if not cookie_value:
            return SessionHandle(None, None)
        session_id = self.signer.unsign(cookie_value)
        if session_id is None:
            logger.warning("SESSION: ignoring session cookie with an invalid signature")
            return SessionHandle(None, None)
        data = self.store.get(session_id)
        if data is None:
            return SessionHandle(None, None)
        return SessionHandle(session_id, data)

    def _issue(self, handle: SessionHandle, response: StarletteResponse) -> None:
        # Fresh id on every authentication so a pre-login cookie can't be fixated
        if handle.session_id:
            self.store.destroy(handle.session_id)
        session_id = self.store.new_session_id()
        handle.data = self.store.save(session_id, handle._pending_tokens)
        handle.session_id = session_id
        handle._pending_tokens = None
        response.set_cookie(
            self.settings.SESSION_COOKIE_NAME,
            self.signer.sign(session_id),
            max_age=self.settings.SESSION_TTL_SECONDS,
            httponly=True,
            secure=self.settings.SESSION_COOKIE_SECURE,
            samesite=self.settings.SESSION_COOKIE_SAMESITE,
            path="/",
        )

    def _clear(self, handle: SessionHandle, response: StarletteResponse) -> None:
        if handle.session_id:
            try:
                self.store.destroy(handle.session_id)
            except Exception:
                # The cookie is still expired below and the record ages out on its own
                logger.exception("SESSION: failed to destroy session record")
        handle.session_id = None
        handle.data = None
        response.delete_cookie(
            self.settings.SESSION_COOKIE_NAME,
            httponly=True,
            secure=self.settings.SESSION_COOKIE_SECURE,
            samesite=self.settings.SESSION_COOKIE_SAMESITE,
            path="/",
        )


def get_session(request: Request) -> SessionHandle:
    return request.state.session
