"""Intent taxonomy and conversation data model for chatdesk.

This module defines the closed set of intents, the classification result
handed from the classifier to the router, and the per-invocation
conversation context supplied by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..confirmation import ConfirmationToken


class Intent(str, Enum):
    """Core intents for user input classification."""

    CREATE_ITEM = "create_item"  # Open a new issue (needs confirmation)
    LIST_ITEMS = "list_items"  # List issues or merge requests
    CLOSE_ITEM = "close_item"  # Close an issue with delivery info (needs confirmation)
    ASSIGN_SELF = "assign_self"  # Claim the linked issue
    LINK_EXISTING = "link_existing"  # Bind the thread to an existing issue
    SUMMARIZE_ITEM = "summarize_item"  # Summarize an issue and its discussion
    SEARCH_HISTORY = "search_history"  # Search chat history
    READ_DOCUMENT = "read_document"  # Read a document by URL
    UPDATE_LINKED_ITEM = "update_linked_item"  # Append info to the linked issue
    COLLECT_FEEDBACK = "collect_feedback"  # Summarize feedback from chat members
    REVIEW_CHANGES = "review_changes"  # Review merge requests
    GENERAL_CHAT = "general_chat"  # Delegate to the conversational agent
    HELP = "help"  # Static usage text

    @classmethod
    def from_value(cls, value: str) -> "Intent | None":
        """Look up an intent by its wire value, returning None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


# Intents whose handler returns a pending action before committing
CONFIRMABLE_INTENTS: frozenset[Intent] = frozenset({Intent.CREATE_ITEM, Intent.CLOSE_ITEM})

# Intents that address an existing issue by number
ISSUE_REFERENCE_INTENTS: frozenset[Intent] = frozenset(
    {
        Intent.CLOSE_ITEM,
        Intent.ASSIGN_SELF,
        Intent.LINK_EXISTING,
        Intent.SUMMARIZE_ITEM,
        Intent.REVIEW_CHANGES,
    }
)


@dataclass
class LinkedReference:
    """A persisted binding between a chat thread and an external tracked item.

    Attributes:
        chat_id: Chat the thread lives in
        root_id: Root message id of the thread
        external_id: Identifier of the item in the external system (issue IID)
        external_url: Web URL of the item
        created_by: Chat user who established the binding
        project: Project path that scopes external_id (e.g. "dpa/dagster")
        external_system: Name of the external system
        created_at: When the binding was stored
    """

    chat_id: str
    root_id: str
    external_id: str
    external_url: str = ""
    created_by: str = ""
    project: str = ""
    external_system: str = "gitlab"
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def thread_key(self) -> str:
        return thread_key(self.chat_id, self.root_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON persistence."""
        return {
            "chat_id": self.chat_id,
            "root_id": self.root_id,
            "external_system": self.external_system,
            "external_id": self.external_id,
            "external_url": self.external_url,
            "project": self.project,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LinkedReference":
        """Deserialize from dictionary."""
        created_at = data.get("created_at")
        return cls(
            chat_id=data["chat_id"],
            root_id=data["root_id"],
            external_id=str(data["external_id"]),
            external_url=data.get("external_url", ""),
            created_by=data.get("created_by", ""),
            project=data.get("project", ""),
            external_system=data.get("external_system", "gitlab"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


def thread_key(chat_id: str, root_id: str) -> str:
    """Build the lookup key for a thread in the linked-reference store."""
    return f"{chat_id}:{root_id}"


@dataclass
class ConversationContext:
    """Per-invocation context supplied by the caller.

    Attributes:
        chat_id: Chat the message was posted in
        thread_root_id: Root message id of the thread (empty outside threads)
        user_id: Sender of the message
        linked_reference: Previously established thread binding, if any
    """

    chat_id: str = ""
    thread_root_id: str = ""
    user_id: str = ""
    linked_reference: LinkedReference | None = None

    @property
    def is_linked(self) -> bool:
        return self.linked_reference is not None


@dataclass
class ClassificationResult:
    """Result of intent classification.

    Attributes:
        intent: The classified intent
        params: Intent-specific string parameters (issueId, docUrl, targetUsers, help)
        raw_query: The input exactly as received
        text: The input with any command token stripped
        source: Classification stage (confirmation, command, context, pattern, llm, fallback)
        confirmation: Decoded confirmation token when the input was one
        matched_pattern: Pattern that matched (for debugging)
    """

    intent: Intent
    params: dict[str, str] = field(default_factory=dict)
    raw_query: str = ""
    text: str = ""
    source: str = "unknown"
    confirmation: "ConfirmationToken | None" = None
    matched_pattern: str | None = None

    @property
    def issue_id(self) -> str | None:
        return self.params.get("issueId")

    @property
    def is_confirmation(self) -> bool:
        return self.confirmation is not None

    @property
    def wants_help(self) -> bool:
        return self.params.get("help") == "true"

    @classmethod
    def chat_fallback(cls, raw_query: str, source: str = "fallback") -> "ClassificationResult":
        """Create a general-chat result for input no stage could resolve.

        Args:
            raw_query: The original input text
            source: Stage that produced the fallback

        Returns:
            ClassificationResult with GENERAL_CHAT intent
        """
        return cls(
            intent=Intent.GENERAL_CHAT,
            raw_query=raw_query,
            text=raw_query.strip(),
            source=source,
        )
