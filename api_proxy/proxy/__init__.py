"""
Proxy Package
=============

This package implements the envelope-forwarding endpoint that relays
requests from a browser-only application to allow-listed third-party APIs.

Main Components:
----------------
- routes.py: FastAPI router with the preflight and forwarding endpoints

Security Features:
------------------
- Shared secret check on every envelope
- Destination allow-list
- Server-side provider credential injection

Usage:
------
    from api_proxy.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .routes import proxy_router

__all__ = ["proxy_router"]
