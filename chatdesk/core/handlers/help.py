"""Static usage text."""

from __future__ import annotations

from ..formatter import HandlerOutcome, Reply
from ..intent.commands import format_command_help
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent
from .base import Handler

HELP_FOOTER = """\
You can also just ask in plain words, e.g. "create issue: fix pipeline, \
priority 2, ddl next wednesday" or "show my issues".

Inside a thread linked to an issue, "assign this to me" and \
"additional info: ..." act on the linked issue."""


class HelpHandler(Handler):
    intent = Intent.HELP

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        return Reply(f"{format_command_help()}\n\n{HELP_FOOTER}")


__all__ = ["HelpHandler"]
