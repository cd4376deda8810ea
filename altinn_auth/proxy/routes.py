"""
Proxy Routes - Altinn API Forwarding
====================================

This module implements authenticated endpoints that relay the session's
access token to the Altinn Platform and App APIs and return their responses.

Security Model:
---------------
1. The access token never leaves the server except toward Altinn
2. Requests without an authenticated session get 401 before any upstream call
3. Every upstream call goes through the logged client, with Authorization
   redacted in the request log

Error Mapping:
--------------
- Upstream non-2xx      -> same status, {"error": <upstream body>}
- Transport failure     -> 500, {"error": <message>}

Endpoints:
----------
- GET  /api/platform/profile
- GET  /api/platform/storage/instances
- GET  /api/platform/storage/instances/{instance_id}
- GET  /api/platform/storage/instances/{instance_id}/dataelements
- GET  /api/platform/storage/instances/{instance_id}/events
- GET  /api/app/metadata
- GET  /api/app/instances
- POST /api/app/instances
- GET  /api/altinn/profile    (legacy alias)
- GET  /api/altinn/instances  (legacy alias)
"""

import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, Query, Request

from altinn_auth.auth.exceptions import NotAuthenticatedError, UpstreamError
from altinn_auth.auth.session import get_session
from altinn_auth.config import Settings
from altinn_auth.logs.recorder import LoggedHttpClient
from altinn_auth.models import ErrorResponse, SessionRecord

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter(
    prefix="/api",
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)

APP_API_NOT_CONFIGURED = "App API not configured. Set ALTINN_ORG and ALTINN_APP_NAME in .env"


# ============================================================================
# Dependencies
# ============================================================================

async def require_session(session: SessionRecord = Depends(get_session)) -> SessionRecord:
    """
    Dependency returning an authenticated session.

    Raises:
        NotAuthenticatedError: If the session holds no access token
    """
    if not session.access_token:
        raise NotAuthenticatedError()
    return session


def get_http_client(request: Request) -> LoggedHttpClient:
    return request.app.state.app_state.http


def get_app_settings(request: Request) -> Settings:
    return request.app.state.app_state.settings


def require_app_api(settings: Settings = Depends(get_app_settings)) -> str:
    """
    Dependency returning the App API base URL.

    Raises:
        UpstreamError: 400 if ALTINN_ORG / ALTINN_APP_NAME are not set
    """
    if not settings.app_api_url:
        raise UpstreamError(APP_API_NOT_CONFIGURED, status_code=400)
    return settings.app_api_url


# ============================================================================
# Forwarding
# ============================================================================

def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def forward(
    http: LoggedHttpClient,
    method: str,
    url: str,
    access_token: str,
    params: Optional[Dict[str, Any]] = None,
    payload: Any = None,
) -> Any:
    """
    Send one request upstream with the user's access token.

    Returns:
        The upstream response body (JSON when it parses, else text)

    Raises:
        UpstreamError: Non-2xx upstream status or a transport failure
    """
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    }
    if method == "POST":
        headers["Content-Type"] = "application/json"

    try:
        response = await http.request(
            method,
            url,
            headers=headers,
            params=params or None,
            json=payload,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"Upstream request failed: {type(e).__name__}", extra={"url": url})
        raise UpstreamError(str(e) or type(e).__name__, status_code=500) from e

    body = _body(response)
    if not response.is_success:
        logger.warning(
            f"Upstream returned {response.status_code}",
            extra={"url": url},
        )
        raise UpstreamError(body, status_code=response.status_code)

    return body


def _owner_params(instance_owner_party_id: Optional[str], session: SessionRecord) -> Dict[str, Any]:
    """instanceOwnerPartyId from the query, else from the userinfo pid."""
    if instance_owner_party_id:
        return {"instanceOwnerPartyId": instance_owner_party_id}
    pid = (session.user_info or {}).get("pid")
    if pid:
        return {"instanceOwnerPartyId": pid}
    return {}


# ============================================================================
# Platform API
# ============================================================================

@proxy_router.get("/platform/profile", tags=["Platform API"])
async def platform_profile(
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """Profile of the logged-in user."""
    return await forward(
        http, "GET", f"{settings.platform_url}/profile/api/v1/user", session.access_token
    )


@proxy_router.get("/platform/storage/instances", tags=["Platform API"])
async def storage_instances(
    instance_owner_party_id: Optional[str] = Query(None, alias="instanceOwnerPartyId"),
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Instances across all apps.

    instanceOwnerPartyId defaults to the pid claim from userinfo.
    """
    return await forward(
        http,
        "GET",
        f"{settings.platform_url}/storage/api/v1/instances",
        session.access_token,
        params=_owner_params(instance_owner_party_id, session),
    )


@proxy_router.get("/platform/storage/instances/{instance_id:path}/dataelements", tags=["Platform API"])
async def storage_instance_dataelements(
    instance_id: str,
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    return await forward(
        http,
        "GET",
        f"{settings.platform_url}/storage/api/v1/instances/{instance_id}/dataelements",
        session.access_token,
    )


@proxy_router.get("/platform/storage/instances/{instance_id:path}/events", tags=["Platform API"])
async def storage_instance_events(
    instance_id: str,
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    return await forward(
        http,
        "GET",
        f"{settings.platform_url}/storage/api/v1/instances/{instance_id}/events",
        session.access_token,
    )


@proxy_router.get("/platform/storage/instances/{instance_id:path}", tags=["Platform API"])
async def storage_instance(
    instance_id: str,
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    A single instance.

    Altinn instance ids have the form {partyId}/{guid}, so the id may
    contain a slash.
    """
    return await forward(
        http,
        "GET",
        f"{settings.platform_url}/storage/api/v1/instances/{instance_id}",
        session.access_token,
    )


# ============================================================================
# App API
# ============================================================================

@proxy_router.get("/app/metadata", tags=["App API"])
async def app_metadata(
    session: SessionRecord = Depends(require_session),
    app_api_url: str = Depends(require_app_api),
    http: LoggedHttpClient = Depends(get_http_client),
):
    return await forward(http, "GET", f"{app_api_url}/metadata", session.access_token)


@proxy_router.get("/app/instances", tags=["App API"])
async def app_instances(
    instance_owner_party_id: Optional[str] = Query(None, alias="instanceOwnerPartyId"),
    session: SessionRecord = Depends(require_session),
    app_api_url: str = Depends(require_app_api),
    http: LoggedHttpClient = Depends(get_http_client),
):
    params = {"instanceOwnerPartyId": instance_owner_party_id} if instance_owner_party_id else None
    return await forward(
        http, "GET", f"{app_api_url}/instances", session.access_token, params=params
    )


@proxy_router.post("/app/instances", tags=["App API"])
async def create_app_instance(
    payload: Optional[Dict[str, Any]] = Body(None),
    session: SessionRecord = Depends(require_session),
    app_api_url: str = Depends(require_app_api),
    http: LoggedHttpClient = Depends(get_http_client),
):
    """Create an instance; the request body is forwarded unchanged."""
    logger.info("Creating app instance", extra={"app_api_url": app_api_url})
    return await forward(
        http, "POST", f"{app_api_url}/instances", session.access_token, payload=payload
    )


# ============================================================================
# Legacy aliases
# ============================================================================

@proxy_router.get("/altinn/profile", tags=["Legacy"])
async def legacy_profile(
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    return await platform_profile(session=session, http=http, settings=settings)


@proxy_router.get("/altinn/instances", tags=["Legacy"])
async def legacy_instances(
    instance_owner_party_id: Optional[str] = Query(None, alias="instanceOwnerPartyId"),
    session: SessionRecord = Depends(require_session),
    http: LoggedHttpClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
):
    return await storage_instances(
        instance_owner_party_id=instance_owner_party_id,
        session=session,
        http=http,
        settings=settings,
    )
