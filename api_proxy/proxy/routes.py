"""
Proxy Routes - Envelope Forwarding
==================================

This module implements the proxy endpoint that lets a browser-only
application call a third-party API (OpenAI) without holding the provider
credential.

Request Lifecycle:
------------------
1. OPTIONS on any path is answered immediately with permissive CORS headers
2. Body is parsed as JSON and validated against ProxyEnvelope
3. Envelope 'key' must equal PROXY_SHARED_SECRET
4. Envelope 'url' must start with an allow-listed prefix
5. Provider credential is injected server-side for matching destinations
6. Destination status, headers and body are streamed back with
   Access-Control-Allow-Origin: *

Endpoints:
----------
- OPTIONS /{path}: CORS preflight
- POST /: Forward one envelope
"""

import hmac
import logging
from typing import Dict, List, Tuple

import httpx
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..config import Settings, get_settings
from ..models import EnvelopeRejected, ErrorResponse, ProxyEnvelope, parse_envelope
from ..providers import build_upstream_headers, is_url_allowed

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()


CORS_ALLOW_ORIGIN = {"Access-Control-Allow-Origin": "*"}

CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

# Headers that describe a single connection and must not be relayed
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-length",
})

INVALID_KEY_MESSAGE = "Invalid key"
URL_NOT_WHITELISTED_MESSAGE = "URL not whitelisted"


# ============================================================================
# Helpers
# ============================================================================

def create_upstream_client(settings: Settings) -> httpx.AsyncClient:
    """
    Create the HTTP client for a single outbound request.

    A fresh client per request keeps requests fully isolated; the caller
    owns it and must close it.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS),
        follow_redirects=False,
    )


def is_valid_key(candidate: str, secret: str) -> bool:
    """Byte-for-byte comparison in constant time."""
    # surrogatepass: a lone surrogate from a JSON escape is just a wrong key
    return hmac.compare_digest(
        candidate.encode("utf-8", errors="surrogatepass"),
        secret.encode("utf-8", errors="surrogatepass"),
    )


def encode_upstream_headers(headers: Dict[str, str]) -> List[Tuple[bytes, bytes]]:
    """Header pairs as bytes; values are latin-1, as browsers send them."""
    return [
        (name.encode("ascii"), value.encode("latin-1"))
        for name, value in headers.items()
    ]


def build_relay_headers(upstream_headers: httpx.Headers) -> List[Tuple[bytes, bytes]]:
    """
    Raw header pairs sent back to the caller.

    Upstream headers minus hop-by-hop ones, plus an unconditional
    Access-Control-Allow-Origin: *. Repeated headers such as Set-Cookie
    stay separate pairs.
    """
    relay_headers = [
        (name.lower(), value) for name, value in upstream_headers.raw
        if name.lower().decode("latin-1") not in HOP_BY_HOP_HEADERS
        and name.lower() != b"access-control-allow-origin"
    ]
    relay_headers.append((b"access-control-allow-origin", b"*"))
    return relay_headers


def _bad_request(message: str) -> PlainTextResponse:
    return PlainTextResponse(
        message,
        status_code=status.HTTP_400_BAD_REQUEST,
        headers=CORS_ALLOW_ORIGIN,
    )


def _upstream_error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
        headers=CORS_ALLOW_ORIGIN,
    )


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.options("/{path:path}")
async def preflight(path: str) -> Response:
    """
    Answer CORS preflight for any path.

    The request body, if any, is never read.
    """
    return Response(status_code=status.HTTP_200_OK, headers=CORS_PREFLIGHT_HEADERS)


@proxy_router.post("/")
async def proxy_envelope(request: Request) -> Response:
    """
    Forward one envelope to its destination.

    Flow:
    1. Parse and validate the envelope (400 with every issue on failure)
    2. Check the shared secret (400 "Invalid key")
    3. Check the allow-list (400 "URL not whitelisted")
    4. Forward once, injecting provider credentials
    5. Stream the destination response back unchanged, plus CORS

    Returns:
        Destination response, or a proxy-level error response

    Upstream failures:
        - Timeout: 504
        - Connection / DNS / protocol failure: 502
        - Destination error status: relayed as-is
    """
    settings = get_settings()

    raw = await request.body()

    try:
        envelope = parse_envelope(raw)
    except EnvelopeRejected as e:
        logger.warning(
            "Envelope rejected: schema validation failed",
            extra={"issue_count": len(e.issues)}
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=e.to_response().model_dump(),
            headers=CORS_ALLOW_ORIGIN,
        )

    if not is_valid_key(envelope.key, settings.PROXY_SHARED_SECRET):
        logger.warning("Envelope rejected: invalid key")
        return _bad_request(INVALID_KEY_MESSAGE)

    if not is_url_allowed(envelope.url, settings.allowed_url_prefixes_list):
        logger.warning(
            "Envelope rejected: destination not allow-listed",
            extra={"url": envelope.url}
        )
        return _bad_request(URL_NOT_WHITELISTED_MESSAGE)

    return await forward_envelope(envelope, settings)


async def forward_envelope(envelope: ProxyEnvelope, settings: Settings) -> Response:
    """
    Issue the outbound request for an authorized envelope and relay the result.

    The upstream client and response stay open until the relayed body has
    been fully sent or the stream fails, then both are closed.
    """
    upstream_headers = build_upstream_headers(
        envelope.url,
        envelope.headers,
        settings.provider_credentials,
    )

    logger.info(
        "Forwarding envelope",
        extra={"method": envelope.method, "url": envelope.url}
    )

    client = create_upstream_client(settings)
    try:
        upstream_request = client.build_request(
            envelope.method,
            envelope.url,
            headers=encode_upstream_headers(upstream_headers),
            content=envelope.body,
        )
        upstream = await client.send(upstream_request, stream=True)

    except httpx.TimeoutException:
        logger.error("Upstream request timeout", extra={"url": envelope.url})
        await client.aclose()
        return _upstream_error(
            status.HTTP_504_GATEWAY_TIMEOUT,
            "upstream_timeout",
            "Destination did not respond in time",
        )

    except httpx.TransportError as e:
        logger.error(f"Upstream network error: {e}", extra={"url": envelope.url})
        await client.aclose()
        return _upstream_error(
            status.HTTP_502_BAD_GATEWAY,
            "upstream_unreachable",
            "Cannot reach destination",
        )

    except BaseException:
        # Includes cancellation when the inbound connection goes away
        await client.aclose()
        raise

    logger.info(
        "Relaying upstream response",
        extra={"url": envelope.url, "status_code": upstream.status_code}
    )

    async def close_upstream() -> None:
        await upstream.aclose()
        await client.aclose()

    async def relay_body():
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        except httpx.TransportError as e:
            logger.error(f"Upstream stream failed: {e}", extra={"url": envelope.url})
            raise
        finally:
            await close_upstream()

    response = StreamingResponse(
        relay_body(),
        status_code=upstream.status_code,
        # Closes both if the body is never iterated
        background=BackgroundTask(close_upstream),
    )
    response.raw_headers = build_relay_headers(upstream.headers)
    return response
