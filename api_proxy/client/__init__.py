"""
Client Package
==============

Code that runs inside the consuming application.

- proxied_fetch.py: ProxyClient / make_proxied_fetch, envelope-building HTTP client
- openai_service.py: OpenAI chat and key-check calls routed through the proxy
"""

from .openai_service import OpenAIService, OpenAIServiceError
from .proxied_fetch import ProxyClient, make_proxied_fetch

__all__ = ["OpenAIService", "OpenAIServiceError", "ProxyClient", "make_proxied_fetch"]
