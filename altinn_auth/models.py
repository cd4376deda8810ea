"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the service.

Models are organized by functional area:
- Discovery and PKCE models (identity provider configuration, login material)
- Session models (the cookie-persisted session record, the user view)
- Request log models (recorded HTTP exchanges)
- Health and error models
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Discovery / PKCE Models
# ============================================================================

class DiscoveryDocument(BaseModel):
    """Subset of the OpenID Connect discovery document used by the login flow."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    authorization_endpoint: str = Field(..., description="Authorization endpoint URL")
    token_endpoint: str = Field(..., description="Token endpoint URL")
    userinfo_endpoint: str = Field(..., description="Userinfo endpoint URL")
    issuer: Optional[str] = Field(None, description="Issuer identifier")
    jwks_uri: Optional[str] = Field(None, description="JWKS URL (unused, signatures are not verified)")


class PkceChallenge(BaseModel):
    """PKCE verifier and its S256 challenge for a single login attempt."""
    model_config = ConfigDict(frozen=True)

    verifier: str = Field(..., min_length=43, max_length=128)
    challenge: str = Field(...)


# ============================================================================
# Session Models
# ============================================================================

class SessionRecord(BaseModel):
    """
    Authentication state carried in the session cookie.

    Pending-login fields and authenticated fields share one record; None means
    the field is absent and is never serialized.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Pending-login phase
    oauth_state: Optional[str] = Field(None, alias="oauthState")
    oauth_nonce: Optional[str] = Field(None, alias="oauthNonce")
    code_verifier: Optional[str] = Field(None, alias="codeVerifier")

    # Authenticated phase
    access_token: Optional[str] = Field(None, alias="accessToken")
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    id_token: Optional[str] = Field(None, alias="idToken")
    token_expires_at: Optional[int] = Field(None, alias="tokenExpiresAt", description="Epoch milliseconds")
    user_info: Optional[Dict[str, Any]] = Field(None, alias="userInfo")
    id_token_claims: Optional[Dict[str, Any]] = Field(None, alias="idTokenClaims")
    authorization_details: Optional[List[Dict[str, Any]]] = Field(None, alias="authorizationDetails")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    @property
    def is_pending(self) -> bool:
        return bool(self.oauth_state or self.code_verifier) and not self.is_authenticated

    def to_payload(self) -> Dict[str, Any]:
        """Serializable dict with camelCase keys and absent fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CurrentUserView(BaseModel):
    """Response body of GET /api/user."""
    model_config = ConfigDict(populate_by_name=True)

    authenticated: bool = Field(..., description="Whether the session holds an access token")
    user_info: Optional[Dict[str, Any]] = Field(None, alias="userInfo")
    token_expires_at: Optional[int] = Field(None, alias="tokenExpiresAt")
    authorization_details: Optional[List[Dict[str, Any]]] = Field(None, alias="authorizationDetails")
    id_token_claims: Optional[Dict[str, Any]] = Field(None, alias="idTokenClaims")


class Organization(BaseModel):
    """Organization number found in RAR authorization_details."""
    model_config = ConfigDict(populate_by_name=True)

    orgno: str = Field(..., description="Normalized organization number (digits only)")
    type: Optional[str] = Field(None, description="authorization_details type")
    resource: Optional[str] = Field(None)
    resource_name: Optional[str] = Field(None, alias="resourceName")
    unit_type: Optional[str] = Field(None, alias="unitType")
    full_id: Optional[str] = Field(None, alias="fullId", description="orgno as provided, e.g. '0192:123456789'")


# ============================================================================
# Request Log Models
# ============================================================================

class LogEntry(BaseModel):
    """One recorded HTTP exchange."""
    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Sequence number, increasing until the log is cleared")
    type: Literal["outgoing", "incoming"] = Field(...)
    timestamp: str = Field(..., description="ISO-8601 start time")
    method: str = Field(default="GET")
    url: str = Field(...)
    headers: Dict[str, Any] = Field(default_factory=dict)
    request_body: Optional[Any] = Field(None, alias="requestBody")
    response_body: Optional[Any] = Field(None, alias="responseBody")
    status_code: Optional[int] = Field(None, alias="statusCode")
    duration: Optional[int] = Field(None, description="Milliseconds")


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error body returned by JSON endpoints."""
    error: Any = Field(..., description="Error message or upstream error body")
