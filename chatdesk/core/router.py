"""Branch router for chatdesk.

Maps a classified intent to exactly one handler. The table is a closed
enum-to-handler dict; general chat has no handler and yields the skip
signal, except when the classifier flagged a capability question
(params["help"] == "true"), which is answered with the usage text.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping

from .intent.taxonomy import ClassificationResult, Intent

if TYPE_CHECKING:
    from .handlers.base import Handler

logger = logging.getLogger(__name__)


class BranchRouter:
    """Routes classification results to handlers.

    Example:
        router = BranchRouter(build_handlers(deps))
        handler = router.route(result)
        if handler is None:
            ...  # skip to the conversational agent

    Attributes:
        handlers: Intent to handler table
    """

    def __init__(self, handlers: Mapping[Intent, "Handler"]) -> None:
        self.handlers: dict[Intent, "Handler"] = dict(handlers)

    def route(self, result: ClassificationResult) -> "Handler | None":
        """Pick the handler for a classification result.

        Args:
            result: Classifier output

        Returns:
            The handler, or None to signal skip
        """
        intent = result.intent

        if intent == Intent.GENERAL_CHAT:
            if result.wants_help:
                return self.handlers.get(Intent.HELP)
            return None

        handler = self.handlers.get(intent)
        if handler is None:
            logger.warning(f"No handler registered for intent {intent.value}, skipping")
        return handler

    def has_handler(self, intent: Intent) -> bool:
        return intent in self.handlers


__all__ = ["BranchRouter"]
