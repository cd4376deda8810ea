"""
Authentication Route Tests

Exercises /auth/login, /auth/callback, /auth/logout and /api/user through
the FastAPI TestClient, with the identity provider mocked at the httpx
layer. Cookies persist in the client between requests the way a browser
would keep them.
"""

import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi import status

from altinn_auth.auth.session import SESSION_COOKIE_NAME, decode_session, encode_session
from altinn_auth.models import SessionRecord
from conftest import DISCOVERY_URL, TOKEN_ENDPOINT, USERINFO_ENDPOINT, calls_to, make_token


def _location_query(response) -> dict:
    location = response.headers["location"]
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


def _session_from(response) -> SessionRecord:
    return decode_session(response.cookies.get(SESSION_COOKIE_NAME))


def _login(client) -> dict:
    response = client.get("/auth/login")
    assert response.status_code == status.HTTP_302_FOUND
    return _location_query(response)


# ============================================================================
# Login
# ============================================================================

class TestLogin:

    def test_redirects_to_provider_with_pending_cookie(self, client):
        response = client.get("/auth/login")

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"].startswith("https://idp.test/authorize?")

        params = _location_query(response)
        session = _session_from(response)
        assert session.oauth_state == params["state"]
        assert session.oauth_nonce == params["nonce"]
        assert session.code_verifier
        assert session.access_token is None

    def test_login_replaces_previous_session(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, encode_session(SessionRecord(access_token="old")))

        response = client.get("/auth/login")

        session = _session_from(response)
        assert session.access_token is None
        assert session.is_pending

    def test_discovery_unavailable_returns_500_json(self, client, upstream):
        upstream.add("GET", DISCOVERY_URL, exc=httpx.ConnectError("down"))

        response = client.get("/auth/login")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "error" in response.json()
        assert SESSION_COOKIE_NAME not in response.cookies


# ============================================================================
# Callback
# ============================================================================

class TestCallback:

    def test_end_to_end_login(self, client, upstream, mock_http_client):
        upstream.add("POST", TOKEN_ENDPOINT, json={"access_token": "tok", "expires_in": 3600})
        upstream.add("GET", USERINFO_ENDPOINT, json={"sub": "user-1", "pid": "01017012345"})

        params = _login(client)
        before = int(time.time() * 1000)
        response = client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})
        after = int(time.time() * 1000)

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/?success=true"

        session = _session_from(response)
        assert session.access_token == "tok"
        assert before + 3_600_000 - 1000 <= session.token_expires_at <= after + 3_600_000 + 1000
        assert session.oauth_state is None
        assert session.code_verifier is None

        token_call = calls_to(mock_http_client, "POST", TOKEN_ENDPOINT)[0]
        assert token_call.kwargs["data"]["code"] == "abc123"

        user = client.get("/api/user").json()
        assert user["authenticated"] is True
        assert user["userInfo"] == {"sub": "user-1", "pid": "01017012345"}
        assert user["tokenExpiresAt"] == session.token_expires_at

    def test_state_mismatch(self, client, mock_http_client):
        _login(client)

        response = client.get("/auth/callback", params={"state": "forged", "code": "abc123"})

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/?error=invalid_state"
        assert calls_to(mock_http_client, "POST", TOKEN_ENDPOINT) == []

    def test_callback_without_session(self, client):
        response = client.get("/auth/callback", params={"state": "S", "code": "abc123"})
        assert response.headers["location"] == "/?error=invalid_state"

    def test_missing_code(self, client):
        params = _login(client)

        response = client.get("/auth/callback", params={"state": params["state"]})

        assert response.headers["location"] == "/?error=no_code"

    def test_missing_verifier(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, encode_session(SessionRecord(oauth_state="S")))

        response = client.get("/auth/callback", params={"state": "S", "code": "abc123"})

        assert response.headers["location"] == "/?error=missing_pkce_verifier"

    def test_provider_error_is_passed_through(self, client):
        _login(client)

        response = client.get(
            "/auth/callback",
            params={"error": "access_denied", "error_description": "User cancelled"},
        )

        assert response.headers["location"] == "/?error=access_denied"

    def test_provider_error_is_url_encoded(self, client):
        response = client.get("/auth/callback", params={"error": "weird error&x=1"})
        assert response.headers["location"] == "/?error=weird%20error%26x%3D1"

    def test_token_exchange_failure(self, client, upstream):
        upstream.add("POST", TOKEN_ENDPOINT, json={"error": "invalid_grant"}, status_code=400)
        params = _login(client)

        response = client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})

        assert response.headers["location"] == "/?error=token_exchange_failed"
        assert SESSION_COOKIE_NAME not in response.cookies

    @pytest.mark.parametrize("body", [
        {"access_token": "tok", "expires_in": "nan"},
        {"access_token": "tok", "refresh_token": 12345},
        {"access_token": 12345},
    ])
    def test_malformed_token_response_redirects(self, client, upstream, body):
        upstream.add("POST", TOKEN_ENDPOINT, json=body)
        params = _login(client)

        response = client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/?error=token_exchange_failed"
        assert SESSION_COOKIE_NAME not in response.cookies

    def test_discovery_failure_on_callback(self, client, app, upstream):
        params = _login(client)
        upstream.add("GET", DISCOVERY_URL, exc=httpx.ConnectError("down"))
        app.state.app_state.discovery.reset()

        response = client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})

        assert response.headers["location"] == "/?error=oidc_config_not_available"

    def test_failed_callback_keeps_pending_session(self, client):
        params = _login(client)
        client.get("/auth/callback", params={"state": "forged", "code": "abc123"})

        # the pending cookie is still there, so a correct callback can follow
        session = decode_session(client.cookies.get(SESSION_COOKIE_NAME))
        assert session.oauth_state == params["state"]

    def test_incoming_callback_is_logged_with_masked_code(self, client, app):
        _login(client)
        client.get("/auth/callback", params={"state": "forged", "code": "secret-code"})

        entries = app.state.app_state.request_log.entries()
        incoming = [entry for entry in entries if entry.type == "incoming"]
        assert len(incoming) == 1
        assert incoming[0].response_body["code"] == "[CODE_RECEIVED]"
        assert "secret-code" not in incoming[0].url
        assert incoming[0].headers.get("cookie") == "[REDACTED]"

    def test_rar_details_reach_current_user(self, client, upstream):
        details = [{
            "type": "ansattporten:altinn:service",
            "resource": "urn:altinn:resource:demo",
            "authorized_parties": [{"orgno": {"ID": "0192:123456789"}, "name": "Demo AS"}],
        }]
        upstream.add("POST", TOKEN_ENDPOINT, json={
            "access_token": "tok",
            "id_token": make_token({"sub": "user-1", "authorization_details": details}),
        })
        upstream.add("GET", USERINFO_ENDPOINT, json={"sub": "user-1"})
        params = _login(client)

        client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})

        user = client.get("/api/user").json()
        assert user["authorizationDetails"] == details
        assert user["idTokenClaims"]["sub"] == "user-1"

        organizations = client.get("/api/user/organizations").json()
        assert organizations == [{
            "orgno": "123456789",
            "type": "ansattporten:altinn:service",
            "resource": "urn:altinn:resource:demo",
            "resourceName": "Demo AS",
            "fullId": "0192:123456789",
        }]


# ============================================================================
# Logout / current user
# ============================================================================

class TestLogoutAndCurrentUser:

    def test_current_user_without_cookie(self, client):
        response = client.get("/api/user")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "authenticated": False,
            "userInfo": None,
            "tokenExpiresAt": None,
            "authorizationDetails": None,
            "idTokenClaims": None,
        }

    def test_current_user_with_garbage_cookie(self, client):
        client.cookies.set(SESSION_COOKIE_NAME, "!!garbage!!")

        response = client.get("/api/user")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["authenticated"] is False

    def test_organizations_without_session(self, client):
        assert client.get("/api/user/organizations").json() == []

    def test_logout_clears_session(self, client, upstream):
        upstream.add("POST", TOKEN_ENDPOINT, json={"access_token": "tok"})
        upstream.add("GET", USERINFO_ENDPOINT, json={"sub": "user-1"})
        params = _login(client)
        client.get("/auth/callback", params={"state": params["state"], "code": "abc123"})
        assert client.get("/api/user").json()["authenticated"] is True

        response = client.get("/auth/logout")

        assert response.status_code == status.HTTP_302_FOUND
        assert response.headers["location"] == "/?logout=true"
        assert "max-age=0" in response.headers["set-cookie"].lower()
        assert client.get("/api/user").json()["authenticated"] is False

    def test_logout_is_idempotent(self, client):
        first = client.get("/auth/logout")
        second = client.get("/auth/logout")

        assert first.headers["location"] == second.headers["location"] == "/?logout=true"


# ============================================================================
# Health
# ============================================================================

def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "ok"
    assert "timestamp" in body
