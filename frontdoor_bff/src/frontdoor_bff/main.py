# src/frontdoor_bff/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .auth_utils import OAuthFlowController
from .config import CONFIG_FILE_DIR, Settings, settings as default_settings
from .errors import FrontdoorBFFError
from .frontdoor import FALLBACK_NOTE, FrontdoorBroker
from .session_data import session_state
from .session_middleware import SessionHandle, SessionMiddleware, get_session
from .session_store import InMemorySessionStore, SessionStore
from .token_exchange import TokenExchangeClient

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=CONFIG_FILE_DIR / "templates")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_flow_controller(request: Request) -> OAuthFlowController:
    return request.app.state.flow_controller


def get_frontdoor_broker(request: Request) -> FrontdoorBroker:
    return request.app.state.frontdoor_broker


async def frontdoor_error_handler(request: Request, exc: FrontdoorBFFError):
    if request.url.path.startswith("/api/"):
        body = {"error": exc.error}
        if exc.detail:
            body["detail"] = exc.detail
        return JSONResponse(body, status_code=exc.status_code)
    # Browser-facing redirect flow: a generic plain-text page
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def create_app(
    settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
    token_client: Optional[TokenExchangeClient] = None,
) -> FastAPI:
    if settings is None:
        settings = default_settings
    if session_store is None:
        session_store = InMemorySessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS)
    if token_client is None:
        token_client = TokenExchangeClient(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("--- FrontdoorBFF (FastAPI) Starting Up ---")
        logger.info("Salesforce login URL: %s", settings.SF_LOGIN_URL)
        logger.info("Client ID is set: %s", "Yes" if settings.CLIENT_ID else "No")
        logger.info("Redirect URI: %s", settings.REDIRECT_URI)
        logger.info(
            "Session cookie: name=%s secure=%s samesite=%s ttl=%ss",
            settings.SESSION_COOKIE_NAME,
            settings.SESSION_COOKIE_SECURE,
            settings.SESSION_COOKIE_SAMESITE,
            settings.SESSION_TTL_SECONDS,
        )
        for warning in settings.startup_warnings():
            logger.warning("Warning: %s", warning)
        yield

    app = FastAPI(
        title="Salesforce Frontdoor BFF",
        description="Backend-For-Frontend that relays the Salesforce OAuth flow and mints front-door URLs.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_store = session_store
    app.state.flow_controller = OAuthFlowController(settings, token_client)
    app.state.frontdoor_broker = FrontdoorBroker(token_client)

    app.add_middleware(SessionMiddleware, store=session_store, settings=settings)
    if settings.TRUST_PROXY:
        from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

        # Outermost, so routes and logs see the client address and scheme from X-Forwarded-*
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    app.add_exception_handler(FrontdoorBFFError, frontdoor_error_handler)

    app.mount("/static", StaticFiles(directory=CONFIG_FILE_DIR / "static"), name="static")

    # --- Authentication Routes ---
    @app.get("/auth")
    async def auth(flow: OAuthFlowController = Depends(get_flow_controller)):
        return RedirectResponse(url=flow.build_auth_url(), status_code=status.HTTP_302_FOUND)

    @app.get("/oauth/callback")
    async def oauth_callback(
        request: Request,
        session: SessionHandle = Depends(get_session),
        flow: OAuthFlowController = Depends(get_flow_controller),
    ):
        params = request.query_params
        tokens = await flow.complete(
            params.get("code"),
            error=params.get("error"),
            error_description=params.get("error_description"),
        )
        session.authenticate(tokens)
        logger.info("MAIN: /oauth/callback - session authenticated for %s", tokens.instance_url)
        return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)

    @app.get("/logout")
    async def logout(session: SessionHandle = Depends(get_session)):
        session.destroy()
        return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)

    # --- API Endpoints (called by the embedded client) ---
    @app.get("/api/frontdoor")
    async def api_frontdoor(
        session: SessionHandle = Depends(get_session),
        broker: FrontdoorBroker = Depends(get_frontdoor_broker),
    ):
        link = await broker.derive(session.data)
        if link.fallback:
            return {"frontdoorUrl": link.url, "note": FALLBACK_NOTE}
        return {"frontdoorUrl": link.url}

    @app.get("/api/me")
    async def api_me(session: SessionHandle = Depends(get_session)):
        return session_state(session.data)

    # --- Simple Frontend Serving ---
    @app.get("/", response_class=HTMLResponse)
    async def read_root(request: Request, session: SessionHandle = Depends(get_session)):
        return templates.TemplateResponse(
            request,
            "index.html",
            {"state": session_state(session.data)},
        )

    return app


app = create_app()


def run() -> None:
    import uvicorn

    configure_logging(default_settings.LOG_LEVEL)
    uvicorn.run(
        "frontdoor_bff.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
    )


if __name__ == "__main__":
    run()
