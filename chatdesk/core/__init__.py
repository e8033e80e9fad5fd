"""Core components for chatdesk."""

from __future__ import annotations

from .errors import (
    ChatdeskError,
    CollaboratorError,
    CompletionError,
    ConfigError,
    ConfirmationPayloadError,
)
from .intent import (
    ClassificationResult,
    ConversationContext,
    Intent,
    IntentClassifier,
    LinkedReference,
    create_classifier,
)
from .confirmation import (
    ConfirmationCodec,
    ConfirmationToken,
    PendingAction,
    TokenKind,
)
from .formatter import (
    Pending,
    Reply,
    Skip,
    WorkflowOutput,
    format_output,
)
from .router import BranchRouter
from .handlers import HandlerDeps, build_handlers
from .workflow import AssistantWorkflow, create_workflow

__all__ = [
    # Errors
    "ChatdeskError",
    "CollaboratorError",
    "CompletionError",
    "ConfigError",
    "ConfirmationPayloadError",
    # Intent
    "ClassificationResult",
    "ConversationContext",
    "Intent",
    "IntentClassifier",
    "LinkedReference",
    "create_classifier",
    # Confirmation
    "ConfirmationCodec",
    "ConfirmationToken",
    "PendingAction",
    "TokenKind",
    # Output
    "Pending",
    "Reply",
    "Skip",
    "WorkflowOutput",
    "format_output",
    # Pipeline
    "BranchRouter",
    "HandlerDeps",
    "build_handlers",
    "AssistantWorkflow",
    "create_workflow",
]
