"""
OpenAIService for the journal application

Sends chat completion and key-check requests to OpenAI through the proxy.
Prompt text and parsing of the model's answer belong to the caller; this
module only shapes the request and surfaces provider errors.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .proxied_fetch import ProxiedFetch

logger = logging.getLogger(__name__)

OPENAI_CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_MODELS_URL = "https://api.openai.com/v1/models"

DEFAULT_MODEL = "gpt-4o-mini"

# Reasoning models take max_completion_tokens and reject temperature
REASONING_MODELS = frozenset({"gpt-5-2025-08-07"})


class OpenAIServiceError(Exception):
    """Raised when OpenAI cannot be called or answers with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def build_chat_payload(model: str, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Build a chat completions request body.

    Args:
        model: OpenAI model name
        messages: Chat messages (role/content dicts)

    Returns:
        JSON-ready payload with token limits suited to the model
    """
    payload: Dict[str, Any] = {"model": model, "messages": messages}

    if model in REASONING_MODELS:
        payload["max_completion_tokens"] = 5000
    else:
        payload["max_tokens"] = 500
        payload["temperature"] = 0.1

    return payload


class OpenAIService:
    """
    Thin OpenAI client that goes through the proxy.

    The user's own API key travels inside the envelope's headers; the
    proxy may override it with the server-side credential.
    """

    def __init__(self, fetch: ProxiedFetch, api_key: Optional[str], model: Optional[str] = None):
        """
        Initialize OpenAIService.

        Args:
            fetch: Proxied fetch callable (see make_proxied_fetch)
            api_key: User's OpenAI API key
            model: Default model for chat completions
        """
        self._fetch = fetch
        self._api_key = api_key
        self.model = model or DEFAULT_MODEL

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise OpenAIServiceError(
                "OpenAI API key not configured. Please add your API key in settings."
            )
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send a chat completion request.

        Args:
            messages: Chat messages
            model: Overrides the default model

        Returns:
            Decoded OpenAI response

        Raises:
            OpenAIServiceError: If the key is missing or OpenAI answers with an error
            httpx.HTTPError: If the proxy cannot be reached
        """
        headers = self._headers()
        payload = build_chat_payload(model or self.model, messages)

        response = await self._fetch(
            OPENAI_CHAT_COMPLETIONS_URL,
            method="POST",
            headers=headers,
            body=json.dumps(payload),
        )

        if not response.is_success:
            raise OpenAIServiceError(
                f"OpenAI API error: {response.status_code} - {_error_message(response)}",
                status_code=response.status_code,
            )

        return response.json()

    async def test_api_key(self) -> bool:
        """
        Check that OpenAI answers a models listing through the proxy.

        Returns:
            True if the request succeeded, False otherwise
        """
        try:
            response = await self._fetch(OPENAI_MODELS_URL, headers=self._headers())
        except (OpenAIServiceError, httpx.HTTPError) as e:
            logger.error(f"OpenAI key check failed: {e}")
            return False

        return response.is_success


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return "Unknown error"

    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message") or "Unknown error"
    return "Unknown error"
