"""Issue-tracker handlers for chatdesk.

Create and close are two-phase: the first call returns a preview and a
pending action, the replayed confirmation token commits it. The other
handlers act immediately.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shlex
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ..backends.base import TrackerResult
from ..confirmation import ConfirmationToken, PendingAction
from ..formatter import HandlerOutcome, Pending, Reply
from ..intent.entities import (
    extract_due_date,
    extract_labels,
    extract_mentions,
    extract_priority,
    extract_project,
    extract_urls,
)
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent, LinkedReference
from .base import CANCELLED_MESSAGE, ISSUE_URL_PATTERN, Handler, truncate

logger = logging.getLogger(__name__)

CREATE_ACTION = "create_issue"
CLOSE_ACTION = "close_issue"

# Summary and discussion text sent to the LLM is capped at this length
MAX_SUMMARY_INPUT = 8000


def _confirmation_failure(token: ConfirmationToken, reason: str | None = None) -> Reply:
    return Reply(
        "❌ Could not process the confirmation: "
        f"{reason or token.error or 'unreadable payload'}.\n\nPlease send the request again."
    )


def _check_token(token: ConfirmationToken, action_kind: str) -> Reply | None:
    """Reject tokens without a payload or carrying another handler's action."""
    if token.pending is None:
        return _confirmation_failure(token)
    if token.pending.action_kind != action_kind:
        logger.warning(f"Confirmation for {action_kind} carried action {token.pending.action_kind!r}")
        return _confirmation_failure(token, f"unexpected action {token.pending.action_kind!r}")
    return None


# =============================================================================
# Issue drafts
# =============================================================================


_CREATE_PREFIX = re.compile(
    r"^(?:please\s+|pls\s+|帮我|帮忙|请)?\s*"
    r"(?:(?:create|open|file|raise|add)\s+(?:an?\s+)?(?:new\s+)?(?:issue|bug|ticket|task)s?"
    r"|(?:创建|新建|提|开|记录)(?:一个|个|一下)?\s*(?:issue|问题|工单|bug|需求|任务)?)"
    r"\s*[:：,，-]?\s*",
    re.IGNORECASE,
)

_METADATA_CLAUSE = re.compile(
    r"^(?:priority|prio|优先级|p[1-4]\b|ddl|due|deadline|by\b|before\b|截止|到期"
    r"|labels?\b|tags?\b|标签|in\s+[\w.-]+/|-R\b|--repo|项目|urgent|critical|紧急|加急"
    r"|assign(?:ee)?\b|指派|负责人|@)",
    re.IGNORECASE,
)

_CLAUSE_SPLIT = re.compile(r"[,，;；\n]+")

# glab --due-date takes YYYY-MM-DD
_DUE_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass
class IssueDraft:
    """An issue ready to be created.

    Attributes:
        title: Issue title
        description: Issue body
        project: Target project path
        priority: Priority 1-4, rendered as a priority::N label
        due_date: Due date (YYYY-MM-DD)
        labels: Labels other than the priority label
        assignees: GitLab usernames
    """

    title: str
    description: str = ""
    project: str = ""
    priority: str | None = None
    due_date: str | None = None
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)

    @property
    def all_labels(self) -> list[str]:
        labels = [f"priority::{self.priority}"] if self.priority else []
        labels.extend(label for label in self.labels if not label.startswith("priority::"))
        return labels

    def to_command(self) -> str:
        """Build the glab issue create command."""
        parts = [
            "issue create",
            f"-R {shlex.quote(self.project)}",
            f"-t {shlex.quote(self.title)}",
            f"-d {shlex.quote(self.description or self.title)}",
        ]
        if self.all_labels:
            parts.append(f"-l {shlex.quote(','.join(self.all_labels))}")
        if self.due_date:
            parts.append(f"--due-date {shlex.quote(self.due_date)}")
        if self.assignees:
            parts.append(f"--assignee {shlex.quote(','.join(self.assignees))}")
        return " ".join(parts)

    def to_payload(self) -> dict[str, Any]:
        return {
            "summary": self.title,
            "description": self.description,
            "project": self.project,
            "priority": self.priority,
            "dueDate": self.due_date,
            "labels": self.labels,
            "assignees": self.assignees,
            "command": self.to_command(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any], default_project: str) -> "IssueDraft | None":
        """Rebuild a draft from a confirmation payload.

        Accepts the current keys and the older title/glabCommand form.
        Returns None when the payload carries no title.
        """
        title = str(payload.get("summary") or payload.get("title") or "").strip()
        if not title:
            return None

        labels = payload.get("labels") or []
        if isinstance(labels, str):
            labels = [label.strip() for label in labels.split(",")]

        assignees = payload.get("assignees") or []
        if isinstance(assignees, str):
            assignees = [name.strip() for name in assignees.split(",")]

        due_date = payload.get("dueDate") or payload.get("due_date") or None
        if due_date is not None and not _DUE_DATE.fullmatch(str(due_date)):
            logger.warning(f"Dropping malformed due date from confirmation payload: {due_date!r}")
            due_date = None

        priority = payload.get("priority")
        return cls(
            title=title,
            description=str(payload.get("description") or ""),
            project=str(payload.get("project") or default_project),
            priority=str(priority) if priority else None,
            due_date=str(due_date) if due_date else None,
            labels=[str(label) for label in labels if label],
            assignees=[str(name) for name in assignees if name],
        )


def parse_issue_request(
    text: str,
    now: date | datetime,
    default_project: str,
    user_mapping: dict[str, str] | None = None,
) -> IssueDraft | None:
    """Parse a free-text create request into a draft.

    The first clause that is not metadata (priority, due date, labels,
    project, assignees) becomes the title; the other plain clauses form the
    description.

    Args:
        text: Request text, e.g. "create issue: fix pipeline, priority 2, ddl next wednesday"
        now: Reference point for relative due dates
        default_project: Project used when the text names none
        user_mapping: Chat name to GitLab username, for @mentions

    Returns:
        IssueDraft, or None if no title could be found
    """
    body = _CREATE_PREFIX.sub("", text.strip(), count=1)

    plain: list[str] = []
    for clause in _CLAUSE_SPLIT.split(body):
        clause = clause.strip()
        if clause and not _METADATA_CLAUSE.match(clause):
            plain.append(clause)

    if not plain:
        return None

    title = re.sub(r"\s*@\S+", "", plain[0]).strip(" .。:：-")
    if not title:
        return None

    user_mapping = user_mapping or {}
    return IssueDraft(
        title=title,
        description="\n".join(plain[1:]),
        project=extract_project(body) or default_project,
        priority=extract_priority(body),
        due_date=extract_due_date(body, now),
        labels=extract_labels(body),
        assignees=[user_mapping.get(name, name) for name in extract_mentions(body)],
    )


CREATE_USAGE = (
    "Tell me what the issue is about, for example:\n"
    "`/create fix pipeline, priority 2, ddl next wednesday`"
)


class CreateItemHandler(Handler):
    """Creates an issue after the user confirms the preview."""

    intent = Intent.CREATE_ITEM

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        token = result.confirmation
        if token is not None:
            if token.is_cancel:
                return Reply(CANCELLED_MESSAGE)
            failure = _check_token(token, CREATE_ACTION)
            if failure is not None:
                return failure
            return await self._commit(token.pending.payload, ctx)

        linked = ctx.linked_reference
        if linked is not None:
            return Reply(
                f"This thread is already linked to #{linked.external_id} {linked.external_url}".rstrip()
                + "\n\nUse `/update` to add information to it."
            )

        draft = parse_issue_request(
            result.text,
            self.deps.clock(),
            self.deps.default_project,
            self.deps.user_mapping,
        )
        if draft is None:
            return Reply(f"❓ I could not find an issue title.\n\n{CREATE_USAGE}")

        payload = draft.to_payload()
        payload.update(chatId=ctx.chat_id, rootId=ctx.thread_root_id, createdBy=ctx.user_id)

        return Pending(
            preview=self._preview(draft),
            action=PendingAction(action_kind=CREATE_ACTION, intent=self.intent, payload=payload),
        )

    def _preview(self, draft: IssueDraft) -> str:
        lines = ["📋 **Issue Preview**", "", f"**Title**: {draft.title}", f"**Project**: {draft.project}"]
        if draft.priority:
            lines.append(f"**Priority**: P{draft.priority}")
        if draft.due_date:
            lines.append(f"**Due Date**: {draft.due_date}")
        if draft.all_labels:
            lines.append(f"**Labels**: {', '.join(draft.all_labels)}")
        if draft.assignees:
            lines.append(f"**Assignees**: {', '.join(draft.assignees)}")
        if draft.description:
            lines.extend(["", "**Description**:", draft.description])
        lines.extend(["", "---", "*Click ✅ Confirm to create this issue, or ❌ Cancel to abort.*"])
        return "\n".join(lines)

    async def _commit(self, payload: dict[str, Any], ctx: ConversationContext) -> HandlerOutcome:
        draft = IssueDraft.from_payload(payload, self.deps.default_project)
        if draft is None:
            command = str(payload.get("command") or payload.get("glabCommand") or "")
            if not command.startswith("issue create"):
                return Reply("❌ Could not process the confirmation: no issue title in it.")
            project = str(payload.get("project") or self.deps.default_project)
            title = "New Issue"
        else:
            command = draft.to_command()
            project = draft.project
            title = draft.title

        issue_call = self.run_tracker(command)
        if self.deps.tasks is not None and draft is not None:
            issue_result, task_result = await asyncio.gather(
                issue_call,
                self.deps.tasks.create_task(draft.title, draft.due_date, draft.assignees),
                return_exceptions=True,
            )
        else:
            issue_result, task_result = await issue_call, None

        if isinstance(issue_result, BaseException):
            raise issue_result
        if not issue_result.success:
            return Reply(f"❌ Failed to create issue\n\nError: {issue_result.error}")

        lines = ["✅ **Issue Created!**", "", f"**Title**: {title}", f"**Project**: {project}"]

        issue_id = self._created_issue_id(issue_result.output)
        if issue_id:
            url = self.issue_url(issue_result.output, project, issue_id)
            lines.append(f"**Issue**: #{issue_id} {url}".rstrip())
            lines.extend(self._persist_link(payload, ctx, issue_id, url, project))
        else:
            lines.extend(["", issue_result.output.strip() or "Issue created successfully."])

        lines.extend(self._task_status(task_result))
        return Reply("\n".join(lines))

    @staticmethod
    def _created_issue_id(output: str) -> str | None:
        match = ISSUE_URL_PATTERN.search(output or "")
        if match:
            return match.group(1)
        match = re.search(r"#(\d+)", output or "")
        return match.group(1) if match else None

    def _persist_link(
        self,
        payload: dict[str, Any],
        ctx: ConversationContext,
        issue_id: str,
        url: str,
        project: str,
    ) -> list[str]:
        chat_id = str(payload.get("chatId") or ctx.chat_id or "")
        root_id = str(payload.get("rootId") or ctx.thread_root_id or "")
        if self.deps.store is None or not chat_id or not root_id:
            return []

        ref = LinkedReference(
            chat_id=chat_id,
            root_id=root_id,
            external_id=issue_id,
            external_url=url,
            created_by=str(payload.get("createdBy") or ctx.user_id or ""),
            project=project,
        )
        if self.deps.store.save(ref):
            logger.info(f"Linked thread {ref.thread_key} to #{issue_id}")
            return ["", "🔗 This thread is now linked to the issue."]
        logger.warning(f"Failed to link thread {ref.thread_key} to #{issue_id}")
        return ["", "⚠️ The issue was created but this thread could not be linked to it."]

    @staticmethod
    def _task_status(task_result: TrackerResult | BaseException | None) -> list[str]:
        if task_result is None:
            return []
        if isinstance(task_result, BaseException):
            logger.warning(f"Task creation raised: {task_result}")
            return ["⚠️ Task creation failed: " + str(task_result)]
        if task_result.success:
            return ["📌 Task created."]
        return [f"⚠️ Task creation failed: {task_result.error}"]


# =============================================================================
# Close
# =============================================================================


CLOSE_USAGE = "`/close #45 delivered at https://superset.example.com/dashboard/1`"

_CLOSE_LEAD = re.compile(r"^(?:close|关闭|resolve|finish)\s*(?:issue\s*)?", re.IGNORECASE)


class CloseItemHandler(Handler):
    """Closes an issue with a delivery note after confirmation."""

    intent = Intent.CLOSE_ITEM

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        token = result.confirmation
        if token is not None:
            if token.is_cancel:
                return Reply(CANCELLED_MESSAGE)
            failure = _check_token(token, CLOSE_ACTION)
            if failure is not None:
                return failure
            return await self._commit(token.pending.payload, ctx)

        issue_id, project = self.resolve_issue(result, ctx)
        if issue_id is None:
            return Reply(f"❓ Which issue should I close? For example:\n{CLOSE_USAGE}")

        delivery_urls = [url for url in extract_urls(result.text) if not ISSUE_URL_PATTERN.match(url)]
        if not delivery_urls:
            return Reply(
                f"❓ A delivery URL is required to close #{issue_id} "
                f"(dashboard, report or doc link). For example:\n{CLOSE_USAGE}"
            )
        delivery_url = delivery_urls[0]
        note = self._delivery_note(result.text, issue_id, delivery_urls)

        lines = [
            "🔒 **Close Issue**",
            "",
            f"**Issue**: #{issue_id}",
            f"**Project**: {project}",
            f"**Delivery**: {delivery_url}",
        ]
        if note:
            lines.append(f"**Note**: {note}")
        lines.extend(["", "---", "*Click ✅ Confirm to close this issue, or ❌ Cancel to abort.*"])

        return Pending(
            preview="\n".join(lines),
            action=PendingAction(
                action_kind=CLOSE_ACTION,
                intent=self.intent,
                payload={
                    "issueId": issue_id,
                    "project": project,
                    "deliveryUrl": delivery_url,
                    "note": note,
                    "chatId": ctx.chat_id,
                    "rootId": ctx.thread_root_id,
                    "createdBy": ctx.user_id,
                },
            ),
        )

    @staticmethod
    def _delivery_note(text: str, issue_id: str, urls: list[str]) -> str:
        note = _CLOSE_LEAD.sub("", text.strip(), count=1)
        note = re.sub(rf"(?<!\d)[#!]?{re.escape(issue_id)}(?!\d)", "", note, count=1)
        for url in urls:
            note = note.replace(url, "")
        return re.sub(r"\s+", " ", note).strip(" ,，:：-")

    async def _commit(self, payload: dict[str, Any], ctx: ConversationContext) -> HandlerOutcome:
        issue_id = str(payload.get("issueId") or "")
        if not issue_id.isdigit():
            return Reply("❌ Could not process the confirmation: no issue number in it.")
        project = str(payload.get("project") or self.deps.default_project)
        delivery_url = str(payload.get("deliveryUrl") or "")

        body = f"✅ Delivered: {delivery_url}"
        if payload.get("note"):
            body += f"\n\n{payload['note']}"
        closed_by = payload.get("createdBy") or ctx.user_id
        if closed_by:
            body += f"\n\n(closed from chat by {closed_by})"

        quoted_project = shlex.quote(project)
        note_result = await self.run_tracker(f"issue note {issue_id} -R {quoted_project} -m {shlex.quote(body)}")
        if not note_result.success:
            return Reply(f"❌ Failed to add the delivery note to #{issue_id}\n\nError: {note_result.error}")

        close_result = await self.run_tracker(f"issue close {issue_id} -R {quoted_project}")
        if not close_result.success:
            return Reply(f"❌ Failed to close #{issue_id}\n\nError: {close_result.error}")

        return Reply(f"✅ Closed #{issue_id} in {project}\n\n**Delivery**: {delivery_url}")


# =============================================================================
# List
# =============================================================================


_MR_WORDS = re.compile(r"\b(mr|mrs|merge\s*requests?)\b|合并请求", re.IGNORECASE)
_MINE_WORDS = re.compile(r"\b(my|mine)\b|我的", re.IGNORECASE)
_CLOSED_WORDS = re.compile(r"\b(closed|done|finished)\b|已关闭|关闭的|已完成", re.IGNORECASE)


class ListItemsHandler(Handler):
    intent = Intent.LIST_ITEMS

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        text = result.text or result.raw_query
        is_mr = bool(_MR_WORDS.search(text))
        is_mine = bool(_MINE_WORDS.search(text))
        is_closed = bool(_CLOSED_WORDS.search(text))

        command = f"{'mr' if is_mr else 'issue'} list --group {shlex.quote(self.deps.gitlab_group)}"
        if is_mine:
            command += " --assignee=@me"
        command += f" --state {'closed' if is_closed else 'opened'}"

        listing = await self.run_tracker(command)
        if not listing.success:
            return Reply(f"❌ Failed to list: {listing.error}")

        item_type = "Merge Requests" if is_mr else "Issues"
        title = f"{'My ' if is_mine else ''}{'Closed ' if is_closed else ''}{item_type}"
        output = listing.output.strip()
        if not output:
            return Reply(f"## {title}\n\nNothing found.")
        return Reply(f"## {title}\n\n```\n{output}\n```")


# =============================================================================
# Assign, link, summarize, update
# =============================================================================


class AssignSelfHandler(Handler):
    """Assigns an issue (usually the linked one) to the sender."""

    intent = Intent.ASSIGN_SELF

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        issue_id, project = self.resolve_issue(result, ctx)
        if issue_id is None:
            return Reply("❓ Which issue? Use `/assign #123`, or link this thread first with `/link #123`.")

        username = self.deps.user_mapping.get(ctx.user_id)
        if not username:
            return Reply(
                "❓ I don't know your GitLab username yet. "
                "Ask an admin to add your chat id to the user mapping."
            )

        update = await self.run_tracker(
            f"issue update {issue_id} -R {shlex.quote(project)} --assignee {shlex.quote(username)}"
        )
        if not update.success:
            return Reply(f"❌ Failed to assign #{issue_id}\n\nError: {update.error}")
        return Reply(f"✅ #{issue_id} is now assigned to @{username}")


class LinkExistingHandler(Handler):
    """Binds the current thread to an existing issue."""

    intent = Intent.LINK_EXISTING

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        linked = ctx.linked_reference
        if linked is not None:
            return Reply(
                f"ℹ️ This thread is already linked to #{linked.external_id} {linked.external_url}".rstrip()
            )

        issue_id = result.issue_id
        if issue_id is None:
            return Reply("❓ Which issue should this thread be linked to? For example: `/link #123`")
        if not ctx.chat_id or not ctx.thread_root_id:
            return Reply("ℹ️ Linking only works inside a thread.")
        if self.deps.store is None:
            return Reply("❌ Thread linking is not configured.")

        project = extract_project(result.text) or self.deps.default_project
        view = await self.run_tracker(f"issue view {issue_id} -R {shlex.quote(project)}")
        if not view.success:
            return Reply(f"❌ Could not find #{issue_id} in {project}\n\nError: {view.error}")

        url = self.issue_url(view.output, project, issue_id)
        ref = LinkedReference(
            chat_id=ctx.chat_id,
            root_id=ctx.thread_root_id,
            external_id=issue_id,
            external_url=url,
            created_by=ctx.user_id,
            project=project,
        )
        if not self.deps.store.save(ref):
            return Reply(f"❌ Failed to link this thread to #{issue_id}")

        logger.info(f"Linked thread {ref.thread_key} to #{issue_id}")
        return Reply(f"🔗 This thread is now linked to #{issue_id} {url}".rstrip())


SUMMARY_PROMPT = """\
Summarize this GitLab issue and its discussion for a busy teammate.
Cover: the goal, current status, decisions made, and open questions.
Use short bullet points. Answer in the language of the issue.

{issue}"""


class SummarizeItemHandler(Handler):
    intent = Intent.SUMMARIZE_ITEM

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        issue_id, project = self.resolve_issue(result, ctx)
        if issue_id is None:
            return Reply("❓ Which issue should I summarize? For example: `/summarize #123`")

        view = await self.run_tracker(f"issue view {issue_id} -R {shlex.quote(project)} --comments")
        if not view.success:
            return Reply(f"❌ Failed to read #{issue_id}\n\nError: {view.error}")

        raw = view.output.strip()
        fallback = truncate(raw, 2000, "...\n\n(truncated)")
        summary = await self.complete_or(
            SUMMARY_PROMPT.format(issue=truncate(raw, MAX_SUMMARY_INPUT)),
            fallback,
        )
        return Reply(f"## 📝 Summary of #{issue_id}\n\n{summary}")


class UpdateLinkedItemHandler(Handler):
    """Posts the message as a note on the thread's linked issue."""

    intent = Intent.UPDATE_LINKED_ITEM

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        linked = ctx.linked_reference
        if linked is None:
            return Reply(
                "ℹ️ This thread isn't linked to an issue yet. "
                "Use `/link #123` or `/create ...` first."
            )

        note = (result.text or "").strip()
        if not note:
            return Reply("❓ What should I add? For example: `/update rerun finished, numbers look right`")

        body = note
        if ctx.user_id:
            body += f"\n\n(from chat by {ctx.user_id})"

        project = linked.project or self.deps.default_project
        posted = await self.run_tracker(
            f"issue note {linked.external_id} -R {shlex.quote(project)} -m {shlex.quote(body)}"
        )
        if not posted.success:
            return Reply(f"❌ Failed to update #{linked.external_id}\n\nError: {posted.error}")
        return Reply(f"✅ Added to #{linked.external_id}")


__all__ = [
    "AssignSelfHandler",
    "CloseItemHandler",
    "CreateItemHandler",
    "IssueDraft",
    "LinkExistingHandler",
    "ListItemsHandler",
    "SummarizeItemHandler",
    "UpdateLinkedItemHandler",
    "parse_issue_request",
]
