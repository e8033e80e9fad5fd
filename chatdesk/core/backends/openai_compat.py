"""OpenAI-compatible HTTP completion client for chatdesk.

Works with any gateway exposing /v1/chat/completions (OpenRouter, vLLM,
LiteLLM and similar), with optional Bearer authentication.
"""

from __future__ import annotations

import json
import logging

import httpx

from ..errors import CompletionError
from .base import Completion, TextCompletion

logger = logging.getLogger(__name__)


class OpenAICompletion(TextCompletion):
    """HTTP client for OpenAI-compatible chat completions.

    Example:
        llm = OpenAICompletion("nvidia/nemotron-nano", endpoint="https://openrouter.ai/api", api_key=key)
        completion = await llm.complete("Classify: ...")

    Attributes:
        _name: The model name sent with each request
        _endpoint: API base URL (without /v1)
        _api_key: Optional Bearer token
        _client: httpx.AsyncClient, created on first use
    """

    def __init__(
        self,
        model_name: str,
        endpoint: str = "http://localhost:4444",
        api_key: str | None = None,
        timeout: float = 120.0,
    ) -> None:
        self._name = model_name
        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def model_name(self) -> str:
        return self._name

    def _get_headers(self) -> dict[str, str]:
        """Build request headers including auth if configured."""
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> Completion:
        """Complete a prompt as a single user message.

        Raises:
            CompletionError: If the gateway is unreachable, times out or returns an error
        """
        payload = {
            "model": self._name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }

        try:
            response = await self._get_client().post(
                f"{self._endpoint}/v1/chat/completions",
                json=payload,
                headers=self._get_headers(),
            )
        except httpx.ConnectError as e:
            raise CompletionError(f"Cannot connect to {self._endpoint}") from e
        except httpx.TimeoutException as e:
            raise CompletionError(f"Timeout waiting for {self._endpoint}") from e

        if response.status_code != 200:
            error_msg = f"Completion API error (status {response.status_code})"
            try:
                data = response.json()
                if "error" in data:
                    error = data["error"]
                    error_msg = f"Completion API error: {error.get('message', error) if isinstance(error, dict) else error}"
            except (json.JSONDecodeError, KeyError):
                pass
            raise CompletionError(error_msg)

        try:
            data = response.json()
            text = data["choices"][0]["message"].get("content") or ""
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise CompletionError("Malformed completion response") from e

        return Completion(text=text, model=data.get("model", self._name))

    async def aclose(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["OpenAICompletion"]
