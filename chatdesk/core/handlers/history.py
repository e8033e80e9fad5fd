"""Chat-history handlers: keyword search and feedback collection."""

from __future__ import annotations

import logging
import re

from ..backends.base import ChatMessage
from ..formatter import HandlerOutcome, Reply
from ..intent.entities import extract_mentions
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent
from .base import Handler, truncate

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 10
MAX_FEEDBACK_LINES = 20

# Words that describe the search rather than its subject
SEARCH_STOPWORDS = {
    "search", "find", "for", "the", "chat", "history", "messages", "message",
    "about", "what", "did", "say", "said", "搜索", "搜一下", "消息", "聊天记录",
}


def _sender(message: ChatMessage) -> str:
    return message.sender_name or message.sender_id or "User"


def search_keywords(text: str) -> list[str]:
    """Split a query into lowercase keywords longer than two characters."""
    words = re.split(r"[\s,，。;；]+", text.lower())
    return [w for w in words if len(w) > 2 and w not in SEARCH_STOPWORDS]


class SearchHistoryHandler(Handler):
    """Keyword search over the chat's recent messages."""

    intent = Intent.SEARCH_HISTORY

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        if not ctx.chat_id:
            return Reply("❌ Can't search chat history: no chat id was provided.")
        if self.deps.history is None:
            return Reply("❌ Chat history search is not configured.")

        keywords = search_keywords(result.text)
        if not keywords:
            return Reply("❓ What should I look for? For example: `/search deployment`")

        messages = await self.deps.history.fetch(ctx.chat_id, self.deps.history_limit)
        matches = [m for m in messages if any(kw in m.content.lower() for kw in keywords)]
        logger.info(f"Chat search in {ctx.chat_id}: {len(matches)}/{len(messages)} messages matched")

        if not matches:
            return Reply(f"No matching messages. Searched the last {len(messages)} messages.")

        lines = [
            f"- **{_sender(m)}**: {truncate(m.content.strip(), 100)}"
            for m in matches[:MAX_SEARCH_RESULTS]
        ]
        return Reply(f"## Search results ({len(matches)} messages)\n\n" + "\n".join(lines))


FEEDBACK_PROMPT = """\
Below are chat messages from a team group. Summarize the feedback they \
contain: group related points, note who raised what, and list any action \
items. Use short bullet points and answer in the language of the messages.

{messages}"""


class CollectFeedbackHandler(Handler):
    """Summarizes feedback from mentioned users, or from everyone."""

    intent = Intent.COLLECT_FEEDBACK

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        if not ctx.chat_id:
            return Reply("❌ Can't collect feedback: no chat id was provided.")
        if self.deps.history is None:
            return Reply("❌ Chat history is not configured.")

        targets = [t for t in result.params.get("targetUsers", "").split(",") if t]
        if not targets:
            targets = extract_mentions(result.text)

        messages = await self.deps.history.fetch(ctx.chat_id, self.deps.history_limit)
        feedback = [m for m in messages if m.content.strip() and self._from_targets(m, targets)]

        if not feedback:
            scope = f" from {', '.join('@' + t for t in targets)}" if targets else ""
            return Reply(f"No feedback found{scope} in the last {len(messages)} messages.")

        bullets = "\n".join(
            f"- **{_sender(m)}**: {truncate(m.content.strip(), 200)}"
            for m in feedback[:MAX_FEEDBACK_LINES]
        )
        transcript = "\n".join(f"{_sender(m)}: {m.content.strip()}" for m in feedback)
        summary = await self.complete_or(FEEDBACK_PROMPT.format(messages=transcript), bullets)

        header = f"## Feedback summary ({len(feedback)} messages)"
        return Reply(f"{header}\n\n{summary}")

    def _from_targets(self, message: ChatMessage, targets: list[str]) -> bool:
        if not targets:
            return True
        # A mention may be a display name, a chat user id or a GitLab username
        wanted = {t.lstrip("@").lower() for t in targets}
        names = {message.sender_name, message.sender_id, self.deps.user_mapping.get(message.sender_id, "")}
        return any(name and name.lower() in wanted for name in names)


__all__ = ["CollectFeedbackHandler", "SearchHistoryHandler", "search_keywords"]
