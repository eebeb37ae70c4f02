"""
Data Models Module

This module defines the Pydantic models for the proxy wire protocol:
- ProxyEnvelope: the single message a client sends to the proxy
- Validation error models: the structured 400 body returned when an
  envelope is rejected
- Upstream error and health models
"""

import json
import re
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


ProxyMethod = Literal["GET", "POST"]

# RFC 9110 token characters
HEADER_NAME_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
FORBIDDEN_HEADER_VALUE_CHARS = ("\r", "\n", "\x00")


def _require_utf8(value: str) -> None:
    # JSON escapes can produce lone surrogates, which cannot be sent
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("must not contain unpaired surrogates")


# ============================================================================
# Envelope
# ============================================================================

class ProxyEnvelope(BaseModel):
    """
    A proxied request: destination, method, headers, body and shared secret.

    The proxy always receives envelopes over POST so the request body
    survives every intermediary; the real method travels in ``method``.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="ignore")

    url: str = Field(..., description="Absolute destination URL")
    method: ProxyMethod = Field(..., description="Method used for the destination request")
    headers: Dict[str, str] = Field(..., description="Headers forwarded to the destination")
    body: Optional[str] = Field(None, description="Raw body forwarded to the destination")
    key: str = Field(..., description="Proxy shared secret")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL with a host"""
        _require_utf8(v)
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return v

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: Dict[str, str]) -> Dict[str, str]:
        """
        Require headers that can go on the wire.

        Names must be HTTP tokens. Values must be latin-1 (the same
        ByteString rule browsers apply to fetch headers) without CR, LF or NUL.
        """
        for name, value in v.items():
            if not HEADER_NAME_PATTERN.match(name):
                raise ValueError(f"invalid header name {name!r}")
            if any(c in value for c in FORBIDDEN_HEADER_VALUE_CHARS):
                raise ValueError(f"header {name!r} contains CR, LF or NUL")
            try:
                value.encode("latin-1")
            except UnicodeEncodeError:
                raise ValueError(f"header {name!r} value must be latin-1 encodable")
        return v

    @field_validator("body")
    @classmethod
    def validate_body(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            _require_utf8(v)
        return v

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict; ``body`` is left out when absent."""
        return self.model_dump(exclude_none=True)


# ============================================================================
# Validation Error Models
# ============================================================================

class ValidationIssue(BaseModel):
    """One reason an envelope was rejected."""
    path: str = Field(..., description="Dotted path of the offending field ('' for the whole document)")
    message: str = Field(..., description="Human readable constraint that failed")
    type: str = Field(..., description="Machine readable error type")


class ValidationErrorResponse(BaseModel):
    """Body of a 400 response for an unparseable or malformed envelope."""
    error: str = Field(default="validation_error")
    issues: List[ValidationIssue] = Field(default_factory=list)


class EnvelopeRejected(Exception):
    """Raised when an inbound body cannot be turned into a ProxyEnvelope."""

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        super().__init__(f"{len(issues)} validation issue(s)")

    def to_response(self) -> ValidationErrorResponse:
        return ValidationErrorResponse(issues=self.issues)


def _format_loc(loc) -> str:
    return ".".join(str(part) for part in loc)


def parse_envelope(raw: bytes) -> ProxyEnvelope:
    """
    Parse and validate a raw request body.

    Every violation is collected, not only the first one.

    Args:
        raw: Request body bytes

    Returns:
        The validated envelope

    Raises:
        EnvelopeRejected: If the body is not JSON or does not match the schema
    """
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EnvelopeRejected([
            ValidationIssue(path="", message=f"Invalid JSON: {e}", type="json_invalid")
        ]) from e

    try:
        return ProxyEnvelope.model_validate(document)
    except ValidationError as e:
        raise EnvelopeRejected([
            ValidationIssue(
                path=_format_loc(error["loc"]),
                message=error["msg"],
                type=error["type"],
            )
            for error in e.errors()
        ]) from e


# ============================================================================
# Error / Health Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human readable description")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
