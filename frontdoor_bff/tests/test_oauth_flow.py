"""Route tests for /auth, /oauth/callback, /logout and /api/me."""

from urllib.parse import parse_qs, urlparse

import httpx
from fastapi.testclient import TestClient

from frontdoor_bff.main import create_app
from frontdoor_bff.session_store import InMemorySessionStore

from conftest import ACCESS_TOKEN, INSTANCE_URL, LOGIN_URL, login, token_payload


def test_app_uses_injected_empty_store(app, session_store):
    assert len(session_store) == 0
    assert app.state.session_store is session_store


class TestBeginFlow:
    def test_redirects_to_salesforce_authorize(self, client, session_store):
        resp = client.get("/auth", follow_redirects=False)

        assert resp.status_code == 302
        location = urlparse(resp.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == f"{LOGIN_URL}/services/oauth2/authorize"
        assert parse_qs(location.query) == {
            "response_type": ["code"],
            "client_id": ["3MVG9-client-id"],
            "redirect_uri": ["https://bff.example.com/oauth/callback"],
            "scope": ["web refresh_token openid"],
        }

    def test_does_not_create_a_session(self, client, session_store):
        resp = client.get("/auth", follow_redirects=False)

        assert "set-cookie" not in resp.headers
        assert len(session_store) == 0


class TestCallback:
    def test_missing_code_is_400(self, client, fake_sf, session_store):
        resp = client.get("/oauth/callback", follow_redirects=False)

        assert resp.status_code == 400
        assert resp.text == "Missing code"
        assert "set-cookie" not in resp.headers
        assert fake_sf.requests == []
        assert len(session_store) == 0

    def test_provider_error_without_code_is_400(self, client, fake_sf):
        resp = client.get(
            "/oauth/callback",
            params={"error": "access_denied", "error_description": "end-user denied authorization"},
            follow_redirects=False,
        )

        assert resp.status_code == 400
        assert fake_sf.requests == []

    def test_success_authenticates_and_redirects_home(self, client, session_store):
        resp = login(client)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert len(session_store) == 1
        assert client.get("/api/me").json() == {"authenticated": True, "instanceUrl": INSTANCE_URL}

    def test_session_cookie_attributes(self, client, settings):
        resp = login(client)

        cookie = resp.headers["set-cookie"]
        attrs = [part.strip().lower() for part in cookie.split(";")]
        assert cookie.startswith(f"{settings.SESSION_COOKIE_NAME}=")
        assert "httponly" in attrs
        assert "secure" in attrs
        assert "samesite=none" in attrs
        assert "max-age=3600" in attrs
        assert "path=/" in attrs
        assert ACCESS_TOKEN not in cookie

    def test_missing_access_token_is_500_and_unauthenticated(self, client, fake_sf, session_store):
        payload = token_payload()
        del payload["access_token"]
        fake_sf.token_handler = lambda request: httpx.Response(200, json=payload)

        resp = login(client)

        assert resp.status_code == 500
        assert resp.text == "OAuth token exchange failed. Check server logs."
        assert "set-cookie" not in resp.headers
        assert len(session_store) == 0
        assert client.get("/api/me").json() == {"authenticated": False}

    def test_redirect_from_token_endpoint_is_500(self, client, fake_sf):
        fake_sf.token_handler = lambda request: httpx.Response(
            301, headers={"Location": "https://test.salesforce.com/services/oauth2/token"}
        )

        resp = login(client)

        assert resp.status_code == 500
        assert len(fake_sf.requests) == 1
        assert client.get("/api/me").json() == {"authenticated": False}

    def test_rejected_code_is_500_without_upstream_body(self, client, fake_sf):
        fake_sf.token_handler = lambda request: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "authentication failure"}
        )

        resp = login(client)

        assert resp.status_code == 500
        assert "invalid_grant" not in resp.text

    def test_transport_failure_is_500(self, client, fake_sf):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_sf.token_handler = refuse

        assert login(client).status_code == 500

    def test_failed_callback_leaves_existing_session_alone(self, client, fake_sf):
        login(client, code="first")
        fake_sf.token_handler = lambda request: httpx.Response(400, json={"error": "invalid_grant"})

        resp = login(client, code="first")

        assert resp.status_code == 500
        assert "set-cookie" not in resp.headers
        assert client.get("/api/me").json() == {"authenticated": True, "instanceUrl": INSTANCE_URL}

    def test_later_callback_overwrites_session(self, client, fake_sf, session_store):
        login(client, code="first")
        other = "https://other.my.salesforce.com"
        fake_sf.token_handler = lambda request: httpx.Response(
            200, json={"access_token": "00Dother", "instance_url": other}
        )

        login(client, code="second")

        assert client.get("/api/me").json() == {"authenticated": True, "instanceUrl": other}
        # old id is rotated away, not kept alongside
        assert len(session_store) == 1

    def test_each_code_is_exchanged_once(self, client, fake_sf):
        login(client, code="abc")

        [request] = fake_sf.requests_to("/services/oauth2/token")
        assert b"code=abc" in request.content


    def test_out_of_range_issued_at_still_authenticates(self, client, fake_sf):
        fake_sf.token_handler = lambda request: httpx.Response(200, json=token_payload(issued_at="9" * 400))

        resp = login(client)

        assert resp.status_code == 302
        assert client.get("/api/me").json() == {"authenticated": True, "instanceUrl": INSTANCE_URL}


class TestSessionExpiry:
    def test_session_expires_an_hour_after_login(self, client, clock):
        login(client)

        clock.advance(minutes=59)
        assert client.get("/api/me").json()["authenticated"] is True

        clock.advance(minutes=1)
        assert client.get("/api/me").json() == {"authenticated": False}


class TestLogout:
    def test_logout_clears_session(self, client, session_store, settings):
        login(client)

        resp = client.get("/logout", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert f"{settings.SESSION_COOKIE_NAME}=" in resp.headers["set-cookie"]
        assert len(session_store) == 0
        assert client.get("/api/me").json() == {"authenticated": False}

    def test_logout_without_session_still_redirects(self, client):
        resp = client.get("/logout", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_logout_redirects_even_if_store_fails(self, settings, token_client):
        class BrokenDestroyStore(InMemorySessionStore):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                self.destroy_calls = []

            def destroy(self, session_id):
                self.destroy_calls.append(session_id)
                raise RuntimeError("store unavailable")

        store = BrokenDestroyStore(ttl_seconds=settings.SESSION_TTL_SECONDS)
        app = create_app(settings=settings, session_store=store, token_client=token_client)
        with TestClient(app, base_url="https://testserver") as client:
            login(client)
            assert len(store) == 1
            resp = client.get("/logout", follow_redirects=False)

        assert len(store.destroy_calls) == 1
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert f"{settings.SESSION_COOKIE_NAME}=" in resp.headers["set-cookie"]


class TestSessionStateApi:
    def test_anonymous(self, client):
        resp = client.get("/api/me")

        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False}
        assert "set-cookie" not in resp.headers

    def test_repeated_calls_are_identical(self, client):
        login(client)

        first = client.get("/api/me")
        second = client.get("/api/me")

        assert first.json() == second.json()
        assert ACCESS_TOKEN not in first.text
        assert "5Aep-refresh" not in first.text

    def test_tampered_cookie_is_ignored(self, client, settings):
        real = login(client).cookies[settings.SESSION_COOKIE_NAME]
        session_id, _, signature = real.rpartition(".")
        client.cookies.clear()
        client.cookies.set(settings.SESSION_COOKIE_NAME, f"{session_id}x.{signature}")

        assert client.get("/api/me").json() == {"authenticated": False}


class TestIndexPage:
    def test_renders_login_link_when_anonymous(self, client):
        resp = client.get("/")

        assert resp.status_code == 200
        assert 'href="/auth"' in resp.text

    def test_renders_instance_when_authenticated(self, client):
        login(client)

        resp = client.get("/")

        assert INSTANCE_URL in resp.text
        assert ACCESS_TOKEN not in resp.text
