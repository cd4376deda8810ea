"""
Proxy Package
=============

This package implements authenticated endpoints that relay the session's
access token to the Altinn Platform and App APIs.

Main Components:
----------------
- routes.py: FastAPI router with the /api/platform, /api/app and legacy
  /api/altinn endpoints

Usage:
------
    from altinn_auth.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
