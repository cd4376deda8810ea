"""
Exceptions raised by the login flow and the API proxy.

Every exception carries the redirect error code used by /auth/callback and
the HTTP status used when it is rendered as a JSON error body.
"""

from typing import Any, Optional


class AuthFlowError(Exception):
    """Base exception for authentication and proxy errors"""

    code: str = "server_error"
    status_code: int = 500

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.__class__.__doc__ or self.code
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(AuthFlowError):
    """OpenID Connect configuration not available. Check server logs."""
    code = "oidc_config_not_available"


class DiscoveryError(AuthFlowError):
    """Failed to fetch OpenID Connect configuration"""
    code = "oidc_config_not_available"


class ProviderError(AuthFlowError):
    """Identity provider returned an error"""
    status_code = 400

    def __init__(self, provider_code: str, description: Optional[str] = None):
        super().__init__(description or provider_code, code=provider_code)


class StateMismatchError(AuthFlowError):
    """State parameter does not match the session"""
    code = "invalid_state"
    status_code = 400


class MissingCodeError(AuthFlowError):
    """No authorization code received"""
    code = "no_code"
    status_code = 400


class MissingVerifierError(AuthFlowError):
    """No PKCE code_verifier in session"""
    code = "missing_pkce_verifier"
    status_code = 400


class TokenExchangeError(AuthFlowError):
    """Token exchange failed"""
    code = "token_exchange_failed"
    status_code = 502


class UserInfoFetchError(AuthFlowError):
    """Userinfo request failed"""
    code = "userinfo_failed"
    status_code = 502


class NotAuthenticatedError(AuthFlowError):
    """Not authenticated"""
    code = "not_authenticated"
    status_code = 401


class UpstreamError(AuthFlowError):
    """
    Downstream API call failed.

    `body` is the upstream response body when there was one; it is passed
    through to the client unchanged.
    """

    def __init__(self, body: Any, status_code: int = 500):
        super().__init__(str(body), code="upstream_error", status_code=status_code)
        self.body = body


__all__ = [
    "AuthFlowError",
    "ConfigurationError",
    "DiscoveryError",
    "ProviderError",
    "StateMismatchError",
    "MissingCodeError",
    "MissingVerifierError",
    "TokenExchangeError",
    "UserInfoFetchError",
    "NotAuthenticatedError",
    "UpstreamError",
]
