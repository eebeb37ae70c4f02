"""
Configuration module for the API proxy.

This module uses Pydantic Settings to load and validate environment variables
for the proxy's shared secret, the provider credential, the destination
allow-list and the outbound HTTP behaviour.

Environment variables are loaded from .env file or system environment.
Nothing secret is ever hardcoded here; the service refuses to start without
PROXY_SHARED_SECRET.
"""

from functools import lru_cache
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .providers import ProviderCredential


OPENAI_API_ROOT = "https://api.openai.com/"


def _is_absolute_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class Settings(BaseSettings):
    """
    Proxy service settings loaded from environment variables.

    The allow-list and the provider credential rules are configured
    independently of each other.
    """

    # =========================================================================
    # Proxy Authentication
    # =========================================================================

    PROXY_SHARED_SECRET: str = Field(
        ...,
        description="Shared secret every envelope must carry in its 'key' field",
        min_length=1,
    )

    # =========================================================================
    # Provider Credentials
    # =========================================================================

    OPENAI_API_KEY: Optional[str] = Field(
        None,
        description="OpenAI API key injected as a bearer token for OpenAI destinations",
    )

    OPENAI_API_PREFIX: str = Field(
        default=OPENAI_API_ROOT,
        description="URL prefix that receives the OpenAI credential",
        min_length=1,
    )

    # =========================================================================
    # Destination Allow-list
    # =========================================================================

    ALLOWED_URL_PREFIXES: str = Field(
        default=OPENAI_API_ROOT,
        description="Comma-separated list of URL prefixes the proxy may forward to",
        min_length=1,
    )

    # =========================================================================
    # Outbound HTTP
    # =========================================================================

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout applied to each outbound request",
        gt=0,
        le=600,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    PROXY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    PROXY_PORT: int = Field(
        default=8787,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def allowed_url_prefixes_list(self) -> List[str]:
        """
        Parse and return ALLOWED_URL_PREFIXES as a clean list.

        Returns:
            List of prefix strings without surrounding whitespace.
        """
        return [
            prefix.strip()
            for prefix in self.ALLOWED_URL_PREFIXES.split(",")
            if prefix.strip()
        ]

    @property
    def provider_credentials(self) -> List[ProviderCredential]:
        """
        Credential injection rules, one per configured provider.

        A provider without a key contributes no rule.
        """
        rules = []
        if self.OPENAI_API_KEY:
            rules.append(
                ProviderCredential(prefix=self.OPENAI_API_PREFIX, token=self.OPENAI_API_KEY)
            )
        return rules

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("ALLOWED_URL_PREFIXES")
    @classmethod
    def validate_allowed_url_prefixes(cls, v: str) -> str:
        """
        Validate that ALLOWED_URL_PREFIXES holds at least one absolute URL.

        Raises:
            ValueError: If the list is empty or an entry is not http(s)
        """
        prefixes = [p.strip() for p in v.split(",") if p.strip()]

        if not prefixes:
            raise ValueError("ALLOWED_URL_PREFIXES must contain at least one prefix")

        for prefix in prefixes:
            if not _is_absolute_http_url(prefix):
                raise ValueError(
                    f"Invalid URL prefix: '{prefix}'. "
                    "Expected an absolute http(s) URL such as 'https://api.openai.com/'"
                )

        return v

    @field_validator("OPENAI_API_PREFIX")
    @classmethod
    def validate_provider_prefix(cls, v: str) -> str:
        if not _is_absolute_http_url(v):
            raise ValueError(f"Invalid provider prefix: '{v}'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        if v.upper() not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")

        return v.upper()


class ClientSettings(BaseSettings):
    """Settings for applications that talk to the proxy through ProxyClient."""

    PROXY_ENDPOINT: str = Field(
        default="http://localhost:8787/",
        description="Public URL of the proxy service",
    )

    PROXY_SHARED_SECRET: Optional[str] = Field(
        None,
        description="Shared secret sent in every envelope",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# =============================================================================
# Settings Singletons
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Cached so the environment is read once per process.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


@lru_cache()
def get_client_settings() -> ClientSettings:
    return ClientSettings()
