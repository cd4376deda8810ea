"""
Authentication routes for the OIDC login and callback.

This module implements the browser-facing half of the authorization code
flow against ID-porten / Ansattporten. Session state lives entirely in the
session cookie; AuthFlow does the protocol work.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from altinn_auth.auth.claims import extract_organizations
from altinn_auth.auth.exceptions import AuthFlowError, ConfigurationError, DiscoveryError
from altinn_auth.auth.flow import AuthFlow
from altinn_auth.auth.session import clear_session, get_session, write_session
from altinn_auth.logs.recorder import RequestLog
from altinn_auth.models import CurrentUserView, ErrorResponse, Organization, SessionRecord

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)

user_router = APIRouter(
    prefix="/api/user",
    tags=["user"],
)


# =============================================================================
# Dependencies
# =============================================================================

def get_auth_flow(request: Request) -> AuthFlow:
    return request.app.state.app_state.flow


def get_request_log(request: Request) -> RequestLog:
    return request.app.state.app_state.request_log


def _redirect(target: str, status_code: int = 302) -> RedirectResponse:
    return RedirectResponse(url=target, status_code=status_code)


def _error_redirect(code: str) -> RedirectResponse:
    return _redirect(f"/?error={quote(code, safe='')}")


# =============================================================================
# Login Endpoint
# =============================================================================

@auth_router.get(
    "/login",
    response_class=RedirectResponse,
    responses={500: {"model": ErrorResponse}},
)
async def login(flow: AuthFlow = Depends(get_auth_flow)):
    """
    Start the login by redirecting to the identity provider.

    Stores state, nonce and the PKCE verifier in a fresh pending session
    cookie; any previous session is replaced.

    Returns:
        302 to the authorization endpoint, or 500 JSON if the provider
        configuration cannot be loaded
    """
    try:
        authorization_url, pending = await flow.initiate_login()
    except (DiscoveryError, ConfigurationError) as e:
        logger.error(f"Error in /auth/login: {e.message}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Failed to initialize authentication. Please check server logs."
            ).model_dump(),
        )

    response = _redirect(authorization_url)
    write_session(response, pending, flow.settings)
    return response


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/callback", response_class=RedirectResponse)
async def callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code from the identity provider"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    session: SessionRecord = Depends(get_session),
    flow: AuthFlow = Depends(get_auth_flow),
    request_log: RequestLog = Depends(get_request_log),
):
    """
    Handle the redirect back from the identity provider.

    Every outcome is a redirect to the front page:
        /?success=true      authenticated session cookie written
        /?error=<code>      session cookie left as it was
    """
    request_log.record(
        "incoming",
        str(request.url.include_query_params(code="[CODE_RECEIVED]")) if code else str(request.url),
        "GET",
        dict(request.headers),
        None,
        {"code": "[CODE_RECEIVED]" if code else None, "state": state, "error": error},
        None,
        datetime.now(timezone.utc),
    )

    try:
        authenticated = await flow.handle_callback(
            code, state, error, session, error_description=error_description
        )
    except AuthFlowError as e:
        logger.warning(
            f"Callback failed: {e.code}",
            extra={"error_type": type(e).__name__},
        )
        return _error_redirect(e.code)

    response = _redirect("/?success=true")
    write_session(response, authenticated, flow.settings)
    logger.info("User authenticated")
    return response


# =============================================================================
# Logout Endpoint
# =============================================================================

@auth_router.get("/logout", response_class=RedirectResponse)
async def logout(flow: AuthFlow = Depends(get_auth_flow)):
    """Clear the session and return to the front page."""
    flow.logout()
    response = _redirect("/?logout=true")
    clear_session(response, flow.settings)
    return response


# =============================================================================
# Current User
# =============================================================================

@user_router.get("", response_model=CurrentUserView, response_model_by_alias=True)
async def current_user(session: SessionRecord = Depends(get_session)) -> CurrentUserView:
    """
    Project the session for the UI.

    Always 200; an anonymous or pending session reports authenticated=false.
    """
    return AuthFlow.get_current_user(session)


@user_router.get(
    "/organizations",
    response_model=List[Organization],
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def current_user_organizations(
    session: SessionRecord = Depends(get_session),
) -> List[Organization]:
    """Organization numbers the user is authorized for, from RAR details."""
    if not session.is_authenticated:
        return []
    return extract_organizations(session.authorization_details)
