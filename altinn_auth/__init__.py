"""
Altinn Authentication Service
=============================

OAuth 2.0 authorization code flow with PKCE against ID-porten / Ansattporten,
with optional Rich Authorization Requests, and a relay of the resulting
access token to Altinn Platform and App APIs.

Packages:
    - auth:  Discovery, PKCE, login state machine, session cookie, claims
    - proxy: Authenticated Altinn API endpoints
    - logs:  In-memory request log

Run with:
    uvicorn altinn_auth.main:app --port 3000
"""

__version__ = "1.0.0"
