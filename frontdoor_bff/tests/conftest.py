"""Shared fixtures: a fake Salesforce behind httpx.MockTransport and a TestClient."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from frontdoor_bff.config import Settings
from frontdoor_bff.main import create_app
from frontdoor_bff.session_store import InMemorySessionStore
from frontdoor_bff.token_exchange import TokenExchangeClient

LOGIN_URL = "https://login.example.com"
INSTANCE_URL = "https://example.my.salesforce.com"
ACCESS_TOKEN = "00Dabc!XYZ"


def token_payload(**overrides):
    payload = {
        "access_token": ACCESS_TOKEN,
        "refresh_token": "5Aep-refresh",
        "instance_url": INSTANCE_URL,
        "id": "https://login.example.com/id/00D000000000001/005000000000001",
        "issued_at": "1700000000000",
        "token_type": "Bearer",
    }
    payload.update(overrides)
    return payload


class FakeSalesforce:
    """Dispatches by endpoint path and records every request it receives."""

    def __init__(self):
        self.requests = []
        self.token_handler = lambda request: httpx.Response(200, json=token_payload())
        self.singleaccess_handler = lambda request: httpx.Response(
            200, json={"frontdoor_uri": "/secur/frontdoor.jsp?otp=one-time"}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/services/oauth2/token":
            return self.token_handler(request)
        if request.url.path == "/services/oauth2/singleaccess":
            return self.singleaccess_handler(request)
        return httpx.Response(404)

    def requests_to(self, path):
        return [r for r in self.requests if r.url.path == path]


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        SF_LOGIN_URL=LOGIN_URL,
        CLIENT_ID="3MVG9-client-id",
        CLIENT_SECRET="client-secret",
        REDIRECT_URI="https://bff.example.com/oauth/callback",
        SESSION_SECRET="test-session-secret",
    )


@pytest.fixture
def fake_sf():
    return FakeSalesforce()


@pytest.fixture
def token_client(settings, fake_sf):
    return TokenExchangeClient(settings, transport=httpx.MockTransport(fake_sf))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_store(settings, clock):
    return InMemorySessionStore(ttl_seconds=settings.SESSION_TTL_SECONDS, clock=clock)


@pytest.fixture
def app(settings, session_store, token_client):
    return create_app(settings=settings, session_store=session_store, token_client=token_client)


@pytest.fixture
def client(app):
    # https so the Secure session cookie is sent back
    with TestClient(app, base_url="https://testserver") as c:
        yield c


def login(client, code="auth-code-1"):
    return client.get("/oauth/callback", params={"code": code}, follow_redirects=False)
