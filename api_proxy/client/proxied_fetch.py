"""
Proxy Client
============

Drop-in replacement for a direct HTTP call that routes the request through
the API proxy.

Every call is sent as a single POST to the proxy endpoint. The method the
caller actually wants, along with url, headers, body and the shared secret,
travels as JSON inside that POST body (a ProxyEnvelope).

No retry, no backoff and, unless one is configured, no timeout: transport
failures propagate to the caller as ``httpx.HTTPError``.
"""

import logging
from typing import Awaitable, Callable, Mapping, Optional, get_args

import httpx

from ..config import get_client_settings
from ..models import ProxyEnvelope, ProxyMethod

logger = logging.getLogger(__name__)

PROXY_METHODS = get_args(ProxyMethod)

ProxiedFetch = Callable[..., Awaitable[httpx.Response]]


class ProxyClient:
    """
    Client bound to one proxy endpoint and shared secret.

    Attributes:
        endpoint: Proxy service URL every envelope is POSTed to
        timeout: Optional timeout in seconds (None disables it)
    """

    def __init__(
        self,
        secret: str,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize ProxyClient.

        Args:
            secret: Proxy shared secret placed in every envelope
            endpoint: Proxy URL; defaults to PROXY_ENDPOINT from the environment
            timeout: Timeout for the POST to the proxy
            transport: Optional httpx transport (used by tests)
        """
        self._secret = secret
        self.endpoint = endpoint or get_client_settings().PROXY_ENDPOINT
        self.timeout = timeout
        self._transport = transport

    def build_envelope(
        self,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        method: str = "GET",
    ) -> ProxyEnvelope:
        """
        Build the envelope for one proxied request.

        Raises:
            ValueError: If the method is not GET or POST
            pydantic.ValidationError: If a field is malformed, e.g. a relative
                or non-http(s) url or an unsendable header (a ValueError subclass)
        """
        if method not in PROXY_METHODS:
            raise ValueError(f"Unsupported method '{method}', expected one of {PROXY_METHODS}")

        return ProxyEnvelope(
            url=url,
            method=method,
            headers=dict(headers or {}),
            body=body,
            key=self._secret,
        )

    async def fetch(
        self,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        method: str = "GET",
    ) -> httpx.Response:
        """
        Send a request to ``url`` through the proxy.

        Args:
            url: Destination URL
            body: Raw request body for the destination
            headers: Headers for the destination
            method: Destination method, GET or POST

        Returns:
            The proxy's response: destination status and body, or a
            proxy-level 400/502/504

        Raises:
            ValueError: If the envelope cannot be built (pydantic.ValidationError
                for malformed fields)
            httpx.HTTPError: If the proxy cannot be reached
        """
        envelope = self.build_envelope(url, body=body, headers=headers, method=method)

        logger.debug(
            "Sending proxied request",
            extra={"method": envelope.method, "url": envelope.url}
        )

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.endpoint, json=envelope.to_wire())

        logger.debug(
            "Proxied request completed",
            extra={"url": envelope.url, "status_code": response.status_code}
        )

        return response

    __call__ = fetch


def make_proxied_fetch(
    secret: str,
    endpoint: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProxiedFetch:
    """
    Return an async callable ``(url, *, body=None, headers=None, method="GET")``
    that sends the request through the proxy with ``secret``.

    Example:
        >>> fetch = make_proxied_fetch("my-secret")
        >>> response = await fetch("https://api.openai.com/v1/models")
        >>> response.status_code
        200
    """
    return ProxyClient(secret, endpoint=endpoint, timeout=timeout, transport=transport).fetch
