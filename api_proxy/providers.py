"""
Destination allow-list and provider credential rules.

The two tables are deliberately separate: a prefix can be allow-listed
without any credential being injected for it, and a credential rule never
widens the allow-list.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping


@dataclass(frozen=True)
class ProviderCredential:
    """
    A credential the service attaches to requests bound for one provider.

    Attributes:
        prefix: URL prefix identifying the provider's API
        token: Provider secret, held only by the service
        header: Header that carries the credential
        scheme: Auth scheme placed before the token
    """

    prefix: str
    token: str
    header: str = "Authorization"
    scheme: str = "Bearer"

    def matches(self, url: str) -> bool:
        return url.startswith(self.prefix)

    def headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        value = f"{self.scheme} {self.token}" if self.scheme else self.token
        return {self.header: value}

    def __repr__(self) -> str:
        # Keep the token out of logs and tracebacks
        return f"ProviderCredential(prefix={self.prefix!r}, header={self.header!r})"


def is_url_allowed(url: str, prefixes: Iterable[str]) -> bool:
    """Return True if url starts with any allow-listed prefix."""
    return any(url.startswith(prefix) for prefix in prefixes)


def build_upstream_headers(
    url: str,
    caller_headers: Mapping[str, str],
    providers: Iterable[ProviderCredential],
) -> Dict[str, str]:
    """
    Build headers for the outbound request.

    Caller headers are forwarded verbatim. For every provider rule matching
    the destination, its credential header is added and replaces any caller
    header with the same name (compared case-insensitively).

    Args:
        url: Destination URL from the envelope
        caller_headers: Headers supplied in the envelope
        providers: Credential injection rules

    Returns:
        Headers dict for the outbound request
    """
    injected: Dict[str, str] = {}
    for provider in providers:
        if provider.matches(url):
            injected.update(provider.headers())

    if not injected:
        return dict(caller_headers)

    overridden = {name.lower() for name in injected}
    upstream_headers = {
        k: v for k, v in caller_headers.items()
        if k.lower() not in overridden
    }

    # Provider headers take precedence
    upstream_headers.update(injected)

    return upstream_headers
