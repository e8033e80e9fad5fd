"""Handler base class and shared dependencies.

A handler owns one intent end to end: it validates parameters, talks to
collaborators and returns a Reply, Pending or Skip outcome. Handlers are
independent of each other and hold no state between invocations.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, ClassVar

from ..backends.base import (
    ChatHistory,
    DocumentReader,
    IssueTracker,
    LinkedReferenceStore,
    TaskTracker,
    TextCompletion,
    TrackerResult,
)
from ..errors import ConfigError
from ..formatter import HandlerOutcome
from ..intent.entities import extract_project
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent

logger = logging.getLogger(__name__)

# glab prints web URLs of created or viewed items
ISSUE_URL_PATTERN = re.compile(r"https?://\S+?/-/issues/(\d+)")

CANCELLED_MESSAGE = "🚫 Cancelled. Nothing was changed."


@dataclass
class HandlerDeps:
    """Collaborators and settings shared by all handlers.

    Attributes:
        tracker: Issue tracker (glab)
        completion: Text completion for summaries and reviews
        history: Chat history fetcher
        documents: Document reader
        tasks: Optional companion task tracker
        store: Linked-reference store
        gitlab_group: Group used for list and review queries
        default_project: Project used when none is named or linked
        gitlab_host: Host used to build issue URLs when glab prints none
        history_limit: Messages fetched for search and feedback
        llm_timeout: Seconds allowed for summary and review completions
        user_mapping: Chat user id to GitLab username
        clock: Source of "now" for relative dates
    """

    tracker: IssueTracker | None = None
    completion: TextCompletion | None = None
    history: ChatHistory | None = None
    documents: DocumentReader | None = None
    tasks: TaskTracker | None = None
    store: LinkedReferenceStore | None = None
    gitlab_group: str = "dpa"
    default_project: str = "dpa/dpa-mom/task"
    gitlab_host: str = ""
    history_limit: int = 50
    llm_timeout: float = 30.0
    user_mapping: dict[str, str] = field(default_factory=dict)
    clock: Callable[[], datetime] = datetime.now


class Handler(ABC):
    """Base class for intent handlers.

    Subclasses set the intent class attribute and implement handle().
    """

    intent: ClassVar[Intent]

    def __init__(self, deps: HandlerDeps) -> None:
        self.deps = deps

    @abstractmethod
    async def handle(
        self,
        result: ClassificationResult,
        ctx: ConversationContext,
    ) -> HandlerOutcome:
        """Handle a classified message.

        Args:
            result: Classifier output
            ctx: Conversation context

        Returns:
            Reply, Pending or Skip

        Raises:
            CollaboratorError: If a collaborator fails; the workflow reports it
            ConfigError: If a required collaborator is not configured
        """
        ...

    # =========================================================================
    # Shared helpers
    # =========================================================================

    @property
    def tracker(self) -> IssueTracker:
        if self.deps.tracker is None:
            raise ConfigError("No issue tracker is configured")
        return self.deps.tracker

    async def run_tracker(self, command: str) -> TrackerResult:
        """Run a tracker command with logging."""
        logger.info(f"[{self.intent.value}] glab {command[:120]}")
        result = await self.tracker.run(command)
        if not result.success:
            logger.warning(f"[{self.intent.value}] tracker command failed: {result.error}")
        return result

    def resolve_issue(
        self,
        result: ClassificationResult,
        ctx: ConversationContext,
    ) -> tuple[str | None, str]:
        """Work out which issue a message addresses.

        The explicit issueId parameter wins over the thread's linked issue.
        The project is, in order: named in the text, the linked reference's
        project when addressing the linked issue, the default project.

        Returns:
            (issue id or None, project path)
        """
        linked = ctx.linked_reference
        issue_id = result.issue_id
        if issue_id is None and linked is not None:
            issue_id = linked.external_id

        project = extract_project(result.text)
        if not project and linked is not None and linked.external_id == issue_id and linked.project:
            project = linked.project
        return issue_id, project or self.deps.default_project

    def issue_url(self, output: str, project: str, issue_id: str) -> str:
        """Find the issue URL in glab output, or build one from the configured host."""
        match = ISSUE_URL_PATTERN.search(output or "")
        if match:
            return match.group(0)
        if self.deps.gitlab_host:
            return f"https://{self.deps.gitlab_host}/{project}/-/issues/{issue_id}"
        return ""

    async def complete_or(self, prompt: str, fallback: str) -> str:
        """Run an LLM completion, returning fallback if it is missing or fails.

        Args:
            prompt: Completion prompt
            fallback: Text used when no LLM answer is available

        Returns:
            The completion text or the fallback
        """
        if self.deps.completion is None:
            return fallback
        try:
            completion = await asyncio.wait_for(
                self.deps.completion.complete(prompt, temperature=0.3, max_tokens=800),
                timeout=self.deps.llm_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{self.intent.value}] completion timed out, using fallback")
            return fallback
        except Exception as e:
            logger.warning(f"[{self.intent.value}] completion failed, using fallback: {e}")
            return fallback
        return completion.text.strip() or fallback


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cut text to limit characters, appending marker when cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


__all__ = [
    "CANCELLED_MESSAGE",
    "Handler",
    "HandlerDeps",
    "truncate",
]
