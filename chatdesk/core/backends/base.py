"""Abstract collaborator interfaces for chatdesk.

The core never talks to GitLab, Feishu or an LLM directly. Handlers and the
classifier receive these interfaces by injection, so tests can substitute
AsyncMock instances and deployments can swap adapters.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..intent.taxonomy import LinkedReference


@dataclass
class Completion:
    """A finished text completion."""

    text: str
    model: str = ""


@dataclass
class TrackerResult:
    """Outcome of an issue-tracker or task-tracker call.

    Attributes:
        success: Whether the call succeeded
        output: Standard output (or response body) of the call
        error: Error text when success is False
    """

    success: bool
    output: str = ""
    error: str | None = None


@dataclass
class ChatMessage:
    """One message from a chat's history."""

    message_id: str
    sender_id: str
    content: str
    sender_name: str = ""
    create_time: datetime | None = None


@dataclass
class Document:
    """A document fetched by URL."""

    url: str
    title: str
    content: str
    metadata: dict[str, str] = field(default_factory=dict)


class TextCompletion(ABC):
    """Single-shot text completion (the LLM call).

    Implementations raise CompletionError on any failure. Timeouts are
    enforced by the caller.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name."""
        ...

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        temperature: float = 0.0,
        max_tokens: int = 512,
    ) -> Completion:
        """Complete a prompt.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens to generate

        Raises:
            CompletionError: If the request fails
        """
        ...

    async def aclose(self) -> None:
        """Release any held connections. Idempotent."""
        return None


class IssueTracker(ABC):
    """Executes issue-tracker commands (glab syntax, e.g. "issue list --group dpa")."""

    @abstractmethod
    async def run(self, command: str) -> TrackerResult:
        """Run a tracker command.

        Failures are reported through TrackerResult.success rather than raised.
        """
        ...


class ChatHistory(ABC):
    """Fetches recent messages from a chat."""

    @abstractmethod
    async def fetch(self, chat_id: str, limit: int = 50) -> list[ChatMessage]:
        """Fetch up to limit recent messages, oldest first.

        Raises:
            CollaboratorError: If the chat platform call fails
        """
        ...


class DocumentReader(ABC):
    """Reads a document by URL."""

    @abstractmethod
    async def read(self, url: str) -> Document:
        """Fetch the document.

        Raises:
            CollaboratorError: If the document cannot be read
        """
        ...


class TaskTracker(ABC):
    """Optional companion task tracker (e.g. Feishu tasks)."""

    @abstractmethod
    async def create_task(
        self,
        summary: str,
        due_date: str | None = None,
        assignees: list[str] | None = None,
    ) -> TrackerResult:
        """Create a task mirroring an issue."""
        ...


class LinkedReferenceStore(ABC):
    """Key-value store of thread to issue bindings, keyed by (chat_id, root_id)."""

    @abstractmethod
    def load(self, chat_id: str, root_id: str) -> "LinkedReference | None":
        """Load the binding for a thread, or None."""
        ...

    @abstractmethod
    def save(self, ref: "LinkedReference") -> bool:
        """Insert or replace the binding for ref's thread. Returns success."""
        ...


__all__ = [
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
]
