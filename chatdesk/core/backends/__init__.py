"""Collaborator adapters for chatdesk.

This package provides the interfaces the core depends on and concrete
adapters for them:
- OllamaCompletion / OpenAICompletion: LLM text completion over HTTP
- GlabIssueTracker: GitLab via the glab CLI, with a project guardrail
- FeishuChatHistory / FeishuDocReader / FeishuTaskTracker: Feishu open API
- JsonLinkedReferenceStore / MemoryLinkedReferenceStore: thread links

Usage:
    from chatdesk.core.backends import create_completion

    llm = create_completion(config)
    completion = await llm.complete("...")
    await llm.aclose()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    ChatHistory,
    ChatMessage,
    Completion,
    Document,
    DocumentReader,
    IssueTracker,
    LinkedReferenceStore,
    TaskTracker,
    TextCompletion,
    TrackerResult,
)
from .store import JsonLinkedReferenceStore, MemoryLinkedReferenceStore

if TYPE_CHECKING:
    from ...config import AppConfig


def create_completion(config: "AppConfig") -> TextCompletion:
    """Create the text-completion client selected by config.llm_provider.

    Uses lazy imports so httpx clients are only built for the chosen provider.

    Args:
        config: Application configuration

    Returns:
        Configured TextCompletion (its HTTP client opens on first use)

    Raises:
        ValueError: If the provider is unknown
    """
    if config.llm_provider == "ollama":
        from .ollama import OllamaCompletion

        return OllamaCompletion(config.llm_model, endpoint=config.llm_endpoint)

    elif config.llm_provider == "openai":
        from .openai_compat import OpenAICompletion

        return OpenAICompletion(
            config.llm_model,
            endpoint=config.llm_endpoint,
            api_key=config.llm_api_key,
        )

    else:
        raise ValueError(f"Unknown LLM provider: {config.llm_provider}")


__all__ = [
    # Interfaces
    "ChatHistory",
    "ChatMessage",
    "Completion",
    "Document",
    "DocumentReader",
    "IssueTracker",
    "LinkedReferenceStore",
    "TaskTracker",
    "TextCompletion",
    "TrackerResult",
    # Adapters (lazy imported)
    "OllamaCompletion",
    "OpenAICompletion",
    "GlabIssueTracker",
    "FeishuClient",
    "FeishuChatHistory",
    "FeishuDocReader",
    "FeishuTaskTracker",
    "JsonLinkedReferenceStore",
    "MemoryLinkedReferenceStore",
    # Factory
    "create_completion",
]


def __getattr__(name: str):
    """Lazy import adapters to avoid building unused clients."""
    if name == "OllamaCompletion":
        from .ollama import OllamaCompletion
        return OllamaCompletion
    if name == "OpenAICompletion":
        from .openai_compat import OpenAICompletion
        return OpenAICompletion
    if name == "GlabIssueTracker":
        from .glab import GlabIssueTracker
        return GlabIssueTracker
    if name in ("FeishuClient", "FeishuChatHistory", "FeishuDocReader", "FeishuTaskTracker"):
        from . import feishu
        return getattr(feishu, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
