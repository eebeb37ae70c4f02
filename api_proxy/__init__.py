"""
API Proxy
=========

A small forwarding gateway that lets a browser-only application call the
OpenAI API through a shared-secret, allow-listed proxy, plus the client used
to talk to it.

Packages:
    - api_proxy.proxy   : the forwarding service (FastAPI router)
    - api_proxy.client  : envelope-building client and OpenAI consumer
"""

__version__ = "1.0.0"
