"""
Shared fixtures for the test suite.

Outbound HTTP is replaced by an AsyncMock httpx client whose `request`
method is routed through FakeUpstream, which answers with real
httpx.Response objects (or raises httpx errors) per (method, url).
"""

import time
from typing import Any, Dict, Optional, Tuple, Union
from unittest.mock import AsyncMock

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from altinn_auth.auth.discovery import DiscoveryService
from altinn_auth.auth.flow import AuthFlow
from altinn_auth.config import Settings
from altinn_auth.logs.recorder import LoggedHttpClient, RequestLog
from altinn_auth.main import create_app


ISSUER = "https://idp.test"
DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"
AUTHORIZATION_ENDPOINT = f"{ISSUER}/authorize"
TOKEN_ENDPOINT = f"{ISSUER}/token"
USERINFO_ENDPOINT = f"{ISSUER}/userinfo"
PLATFORM_URL = "https://platform.test"
APP_API_URL = "https://ttd.apps.altinn.no/ttd/demo-app"

DISCOVERY_DOCUMENT = {
    "issuer": ISSUER,
    "authorization_endpoint": AUTHORIZATION_ENDPOINT,
    "token_endpoint": TOKEN_ENDPOINT,
    "userinfo_endpoint": USERINFO_ENDPOINT,
    "jwks_uri": f"{ISSUER}/jwks",
    "code_challenge_methods_supported": ["S256"],
}


def make_token(claims: Dict[str, Any]) -> str:
    """Mint an HS256 JWT; the service never verifies signatures."""
    payload = {"iss": ISSUER, "iat": int(time.time()), **claims}
    return jwt.encode(payload, "test-signing-key", algorithm="HS256")


class FakeUpstream:
    """Canned responses keyed by (METHOD, url without query)."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Union[Dict[str, Any], Exception]] = {}

    def add(
        self,
        method: str,
        url: str,
        json: Any = None,
        status_code: int = 200,
        text: Optional[str] = None,
        exc: Optional[Exception] = None,
    ) -> None:
        if exc is not None:
            self.routes[(method.upper(), url)] = exc
        elif text is not None:
            self.routes[(method.upper(), url)] = {"status_code": status_code, "text": text}
        else:
            self.routes[(method.upper(), url)] = {"status_code": status_code, "json": json}

    def __call__(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        result = self.routes.get((method.upper(), url))
        if result is None:
            raise httpx.ConnectError(f"No route for {method} {url}")
        if isinstance(result, Exception):
            raise result
        request = httpx.Request(method, url, params=kwargs.get("params"))
        return httpx.Response(request=request, **result)


def calls_to(mock_http_client: AsyncMock, method: str, url: str):
    return [
        call for call in mock_http_client.request.call_args_list
        if call.args[0] == method and call.args[1] == url
    ]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        CLIENT_ID="test-client",
        CLIENT_SECRET="test-secret",
        BASE_URL="http://localhost:3000",
        IDPORTEN_DISCOVERY_URL=DISCOVERY_URL,
        OAUTH_SCOPES="openid profile altinn:instances.read",
        RAR_AUTHORIZATION_DETAILS=None,
        ALTINN_PLATFORM_URL=PLATFORM_URL,
        ALTINN_ORG="ttd",
        ALTINN_APP_NAME="demo-app",
        ENVIRONMENT="development",
        ALLOWED_ORIGINS=None,
        MAX_LOGS=1000,
        DISCOVERY_PREWARM=False,
    )


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    fake.add("GET", DISCOVERY_URL, json=DISCOVERY_DOCUMENT)
    return fake


@pytest.fixture
def mock_http_client(upstream):
    client = AsyncMock(spec=httpx.AsyncClient)
    client.request.side_effect = upstream
    return client


@pytest.fixture
def request_log(settings):
    return RequestLog(max_entries=settings.MAX_LOGS)


@pytest.fixture
def http(mock_http_client, request_log):
    return LoggedHttpClient(mock_http_client, request_log)


@pytest.fixture
def discovery(settings, http):
    return DiscoveryService(settings.IDPORTEN_DISCOVERY_URL, http)


@pytest.fixture
def flow(settings, discovery, http):
    return AuthFlow(settings, discovery, http)


@pytest.fixture
def app(settings, mock_http_client):
    return create_app(settings=settings, http_client=mock_http_client)


@pytest.fixture
def client(app):
    """Test client that does not follow redirects (lifespan not run)."""
    return TestClient(app, follow_redirects=False)
