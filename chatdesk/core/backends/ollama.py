"""Ollama HTTP completion client for chatdesk.

Connects to a running Ollama instance via its HTTP API. Ollama handles
model loading itself; this client only manages the HTTP connection.

Ollama API documentation: https://github.com/ollama/ollama/blob/main/docs/api.md
"""

from __future__ import annotations

import json
import logging

import httpx

from ..errors import CompletionError
from .base import Completion, TextCompletion

logger = logging.getLogger(__name__)


class OllamaCompletion(TextCompletion):
    """HTTP client for single-shot Ollama completions.

    Example:
        llm = OllamaCompletion("qwen2.5:7b")
        completion = await llm.complete("Classify: ...", temperature=0.0)
        print(completion.text)
        await llm.aclose()

    Attributes:
        _name: The Ollama model name (e.g., "qwen2.5:7b")
        _endpoint: Ollama API base URL
        _timeout: Per-request timeout in seconds
        _client: httpx.AsyncClient, created on first use
    """

    def __init__(
        self,
        model_name: str,
        endpoint: str = "http://localhost:11434",
        timeout: float = 120.0,
    ) -> None:
        self._name = model_name
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def model_name(self) -> str:
        """Get the Ollama model name."""
        return self._name

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
        """Complete a prompt with /api/generate (non-streaming).

        Raises:
            CompletionError: If Ollama is unreachable, times out or returns an error
        """
        payload = {
            "model": self._name,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }

        try:
            response = await self._get_client().post(f"{self._endpoint}/api/generate", json=payload)
        except httpx.ConnectError as e:
            raise CompletionError(
                f"Cannot connect to Ollama at {self._endpoint}. Is Ollama running? Try: ollama serve"
            ) from e
        except httpx.TimeoutException as e:
            raise CompletionError("Timeout during completion - Ollama may be overloaded") from e

        if response.status_code != 200:
            error_msg = f"Ollama API error (status {response.status_code})"
            try:
                data = response.json()
                if "error" in data:
                    error_msg = f"Ollama error: {data['error']}"
            except (json.JSONDecodeError, KeyError):
                pass
            raise CompletionError(error_msg)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise CompletionError("Ollama returned invalid JSON") from e

        return Completion(text=data.get("response", ""), model=data.get("model", self._name))

    async def aclose(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @classmethod
    async def is_available(cls, endpoint: str = "http://localhost:11434") -> bool:
        """Check if Ollama is running and accessible.

        Makes a GET request to /api/tags, timing out after 2 seconds.
        """
        try:
            async with httpx.AsyncClient(timeout=2.0) as client:
                response = await client.get(f"{endpoint.rstrip('/')}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False


__all__ = ["OllamaCompletion"]
