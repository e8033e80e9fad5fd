"""Merge request review handler."""

from __future__ import annotations

import shlex

from ..formatter import HandlerOutcome, Reply
from ..intent.entities import extract_project
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent
from .base import Handler, truncate

MAX_REVIEW_INPUT = 12000

REVIEW_PROMPT = """\
You are reviewing a GitLab merge request for a data team. Based on the \
description, discussion and changes below, point out risks, missing tests \
or checks, and unclear points. Finish with a one-line verdict. Be concise.

{mr}"""


class ReviewChangesHandler(Handler):
    """Reviews one merge request, or lists those awaiting the user's review."""

    intent = Intent.REVIEW_CHANGES

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        mr_id = result.issue_id
        if mr_id is None:
            return await self._awaiting_review()

        project = extract_project(result.text) or self.deps.default_project
        view = await self.run_tracker(f"mr view {mr_id} -R {shlex.quote(project)} --comments")
        if not view.success:
            return Reply(f"❌ Failed to read !{mr_id}\n\nError: {view.error}")

        raw = view.output.strip()
        review = await self.complete_or(
            REVIEW_PROMPT.format(mr=truncate(raw, MAX_REVIEW_INPUT)),
            truncate(raw, 2000, "...\n\n(truncated)"),
        )
        return Reply(f"## 🔍 Review of !{mr_id}\n\n{review}")

    async def _awaiting_review(self) -> HandlerOutcome:
        group = shlex.quote(self.deps.gitlab_group)
        listing = await self.run_tracker(f"mr list --group {group} --reviewer=@me --state opened")
        if not listing.success:
            return Reply(f"❌ Failed to list merge requests: {listing.error}")

        output = listing.output.strip()
        if not output:
            return Reply("## Awaiting your review\n\nNothing is waiting for you. 🎉")
        return Reply(
            f"## Awaiting your review\n\n```\n{output}\n```\n\nUse `/review !<number>` to review one."
        )


__all__ = ["ReviewChangesHandler"]
