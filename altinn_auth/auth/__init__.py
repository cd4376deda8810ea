"""
Authentication Package

This package handles the OAuth 2.0 / OpenID Connect login against ID-porten
and Ansattporten.

Key responsibilities:
- Discovery document fetching and caching
- PKCE, state and nonce generation
- Authorization code exchange and userinfo lookup
- RAR authorization_details extraction from tokens
- Cookie-persisted session state

Modules:
- routes: Public endpoints (/auth/login, /auth/callback, /auth/logout, /api/user)
- flow: The login state machine
- discovery: OpenID Connect discovery cache
- session: Session cookie codec
- claims: Unverified token payload decoding and RAR extraction

The authentication flow:
1. Browser hits /auth/login and is redirected to the provider
2. User authenticates with the provider
3. Provider redirects to /auth/callback with an authorization code
4. Service exchanges the code (with the PKCE verifier) for tokens
5. Tokens and claims are stored in the session cookie
"""

from .routes import auth_router, user_router

__all__ = [
    "auth_router",
    "user_router",
]
