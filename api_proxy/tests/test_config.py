"""
Configuration and provider rule tests.

Tests api_proxy/config.py and api_proxy/providers.py.
"""

import pytest
from pydantic import ValidationError

from api_proxy.config import Settings
from api_proxy.models import EnvelopeRejected, parse_envelope
from api_proxy.providers import ProviderCredential, build_upstream_headers, is_url_allowed


OPENAI = ProviderCredential(prefix="https://api.openai.com/", token="sk-server")


# ============================================================================
# Settings Tests
# ============================================================================

def test_defaults_allow_only_openai():
    settings = Settings(_env_file=None, PROXY_SHARED_SECRET="s")

    assert settings.allowed_url_prefixes_list == ["https://api.openai.com/"]
    assert settings.UPSTREAM_TIMEOUT_SECONDS == 30.0


def test_allowed_prefixes_are_split_and_stripped():
    settings = Settings(
        _env_file=None,
        PROXY_SHARED_SECRET="s",
        ALLOWED_URL_PREFIXES=" https://api.openai.com/ , https://example.org/api/ ,",
    )

    assert settings.allowed_url_prefixes_list == [
        "https://api.openai.com/",
        "https://example.org/api/",
    ]


@pytest.mark.parametrize("prefixes", [" , ", "api.openai.com", "ftp://files.example.org/"])
def test_invalid_allowed_prefixes_are_rejected(prefixes):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, PROXY_SHARED_SECRET="s", ALLOWED_URL_PREFIXES=prefixes)


def test_shared_secret_is_required(monkeypatch):
    monkeypatch.delenv("PROXY_SHARED_SECRET", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_shared_secret_read_from_environment(monkeypatch):
    monkeypatch.setenv("PROXY_SHARED_SECRET", "from-env")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    settings = Settings(_env_file=None)

    assert settings.PROXY_SHARED_SECRET == "from-env"
    assert settings.provider_credentials == [
        ProviderCredential(prefix="https://api.openai.com/", token="sk-env")
    ]


def test_log_level_is_normalised_and_validated():
    assert Settings(_env_file=None, PROXY_SHARED_SECRET="s", LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    with pytest.raises(ValidationError):
        Settings(_env_file=None, PROXY_SHARED_SECRET="s", LOG_LEVEL="chatty")


def test_no_provider_rule_without_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    settings = Settings(_env_file=None, PROXY_SHARED_SECRET="s")

    assert settings.provider_credentials == []


# ============================================================================
# Provider Rule Tests
# ============================================================================

def test_is_url_allowed_is_a_prefix_match():
    prefixes = ["https://api.openai.com/"]

    assert is_url_allowed("https://api.openai.com/v1/models", prefixes)
    assert not is_url_allowed("https://api.openai.com.evil.example.com/", prefixes)
    assert not is_url_allowed("https://evil.example.com/steal", prefixes)
    assert not is_url_allowed("https://api.openai.com/v1/models", [])


def test_provider_header_injected_when_missing():
    headers = build_upstream_headers("https://api.openai.com/v1/models", {}, [OPENAI])

    assert headers == {"Authorization": "Bearer sk-server"}


def test_provider_header_replaces_caller_header_case_insensitively():
    headers = build_upstream_headers(
        "https://api.openai.com/v1/models",
        {"AUTHORIZATION": "Bearer user", "Content-Type": "application/json"},
        [OPENAI],
    )

    assert headers == {"Content-Type": "application/json", "Authorization": "Bearer sk-server"}


def test_caller_headers_untouched_for_other_destinations():
    caller = {"Authorization": "Bearer caller", "X-Custom": "1"}

    headers = build_upstream_headers("https://example.org/api/x", caller, [OPENAI])

    assert headers == caller
    assert headers is not caller


def test_custom_header_rule():
    rule = ProviderCredential(prefix="https://example.org/", token="abc", header="X-Api-Key", scheme="")

    assert build_upstream_headers("https://example.org/v1", {}, [rule]) == {"X-Api-Key": "abc"}


def test_credential_repr_hides_token():
    assert "sk-server" not in repr(OPENAI)


# ============================================================================
# Envelope Parsing Tests
# ============================================================================

def test_parse_envelope_accepts_optional_body_and_ignores_extras():
    envelope = parse_envelope(
        b'{"url": "https://api.openai.com/v1/models", "method": "GET",'
        b' "headers": {}, "key": "k", "extra": true}'
    )

    assert envelope.body is None
    assert envelope.to_wire() == {
        "url": "https://api.openai.com/v1/models",
        "method": "GET",
        "headers": {},
        "key": "k",
    }


def test_parse_envelope_rejects_coercible_types():
    with pytest.raises(EnvelopeRejected) as exc_info:
        parse_envelope(
            b'{"url": "https://api.openai.com/", "method": "GET",'
            b' "headers": {"X-Count": 1}, "key": 123}'
        )

    assert {issue.path for issue in exc_info.value.issues} == {"headers.X-Count", "key"}


def test_envelope_is_immutable():
    envelope = parse_envelope(
        b'{"url": "https://api.openai.com/", "method": "GET", "headers": {}, "key": "k"}'
    )

    with pytest.raises(ValidationError):
        envelope.url = "https://evil.example.com/"
