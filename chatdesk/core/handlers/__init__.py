"""Intent handlers for chatdesk.

One handler per intent. build_handlers() wires them all to a shared
HandlerDeps for the branch router.
"""

from __future__ import annotations

from ..intent.taxonomy import Intent
from .base import Handler, HandlerDeps
from .docs import ReadDocumentHandler
from .help import HelpHandler
from .history import CollectFeedbackHandler, SearchHistoryHandler
from .issues import (
    AssignSelfHandler,
    CloseItemHandler,
    CreateItemHandler,
    IssueDraft,
    LinkExistingHandler,
    ListItemsHandler,
    SummarizeItemHandler,
    UpdateLinkedItemHandler,
    parse_issue_request,
)
from .review import ReviewChangesHandler

HANDLER_CLASSES: list[type[Handler]] = [
    CreateItemHandler,
    ListItemsHandler,
    CloseItemHandler,
    AssignSelfHandler,
    LinkExistingHandler,
    SummarizeItemHandler,
    SearchHistoryHandler,
    ReadDocumentHandler,
    UpdateLinkedItemHandler,
    CollectFeedbackHandler,
    ReviewChangesHandler,
    HelpHandler,
]


def build_handlers(deps: HandlerDeps) -> dict[Intent, Handler]:
    """Instantiate every handler against shared dependencies.

    Args:
        deps: Collaborators and settings

    Returns:
        Intent to handler table (general chat has no handler)
    """
    return {cls.intent: cls(deps) for cls in HANDLER_CLASSES}


__all__ = [
    "HANDLER_CLASSES",
    "AssignSelfHandler",
    "CloseItemHandler",
    "CollectFeedbackHandler",
    "CreateItemHandler",
    "Handler",
    "HandlerDeps",
    "HelpHandler",
    "IssueDraft",
    "LinkExistingHandler",
    "ListItemsHandler",
    "ReadDocumentHandler",
    "ReviewChangesHandler",
    "SearchHistoryHandler",
    "SummarizeItemHandler",
    "UpdateLinkedItemHandler",
    "build_handlers",
    "parse_issue_request",
]
