"""Handler outcomes and the workflow output envelope.

Every handler returns exactly one of three outcomes:

- Reply: a final text answer
- Pending: a preview plus an action awaiting confirmation
- Skip: defer to the conversational agent outside the core

format_output() turns the outcome into the single WorkflowOutput the
calling layer consumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from .confirmation import ConfirmationCodec, PendingAction
from .intent.taxonomy import Intent

logger = logging.getLogger(__name__)

FALLBACK_RESPONSE = "Sorry, I could not produce an answer for that. Please try again."


@dataclass
class Reply:
    """A final text answer."""

    text: str


@dataclass
class Pending:
    """A preview awaiting confirmation.

    Attributes:
        preview: Text shown above the confirm/cancel buttons
        action: The action replayed when the user confirms
    """

    preview: str
    action: PendingAction


@dataclass
class Skip:
    """Defer to the conversational agent."""

    reason: str = ""


HandlerOutcome = Union[Reply, Pending, Skip]


@dataclass
class WorkflowOutput:
    """The envelope returned by AssistantWorkflow.run.

    Skip, confirmation and a plain answer are mutually exclusive.

    Attributes:
        response: Text to show the user (empty when skip is set)
        intent: Intent the message was classified as
        needs_confirmation: Whether the UI should render confirm/cancel buttons
        confirmation_data: JSON envelope for the confirm button
        skip: Whether the caller should fall through to general chat
    """

    response: str
    intent: Intent
    needs_confirmation: bool = False
    confirmation_data: str | None = None
    skip: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the wire key names the chat layer expects."""
        data: dict[str, Any] = {
            "response": self.response,
            "intent": self.intent.value,
            "needsConfirmation": self.needs_confirmation,
            "skip": self.skip,
        }
        if self.confirmation_data is not None:
            data["confirmationData"] = self.confirmation_data
        return data


def format_output(
    outcome: HandlerOutcome,
    intent: Intent,
    codec: ConfirmationCodec | None = None,
) -> WorkflowOutput:
    """Normalize a handler outcome into a WorkflowOutput.

    Args:
        outcome: What the handler returned
        intent: Classified intent
        codec: Codec used to serialize pending actions

    Returns:
        WorkflowOutput with exactly one terminal outcome set
    """
    if isinstance(outcome, Skip):
        return WorkflowOutput(response="", intent=intent, skip=True)

    if isinstance(outcome, Pending):
        codec = codec or ConfirmationCodec()
        return WorkflowOutput(
            response=_non_empty(outcome.preview, intent),
            intent=intent,
            needs_confirmation=True,
            confirmation_data=codec.dumps(outcome.action),
        )

    if isinstance(outcome, Reply):
        return WorkflowOutput(response=_non_empty(outcome.text, intent), intent=intent)

    raise TypeError(f"Unknown handler outcome: {type(outcome).__name__}")


def _non_empty(text: str, intent: Intent) -> str:
    if text and text.strip():
        return text
    logger.error(f"Handler for {intent.value} returned an empty response")
    return FALLBACK_RESPONSE


__all__ = [
    "FALLBACK_RESPONSE",
    "HandlerOutcome",
    "Pending",
    "Reply",
    "Skip",
    "WorkflowOutput",
    "format_output",
]
