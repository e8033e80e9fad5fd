"""Slash-command table for chatdesk (classification stage 2).

Maps exact command tokens to intents. Latin and CJK aliases of the same
command map to the same intent; matching is case-insensitive.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .entities import extract_issue_number
from .taxonomy import ISSUE_REFERENCE_INTENTS, Intent


@dataclass(frozen=True)
class CommandSpec:
    """One command and its aliases.

    Attributes:
        intent: Intent the command maps to
        aliases: Command tokens including the leading slash
        usage: Example invocation shown in help text
        description: One-line description shown in help text
    """

    intent: Intent
    aliases: tuple[str, ...]
    usage: str
    description: str


COMMAND_SPECS: list[CommandSpec] = [
    CommandSpec(
        Intent.CREATE_ITEM,
        ("/创建", "/新", "/create", "/new"),
        "/create fix pipeline, priority 2, ddl next wednesday",
        "Create an issue (asks for confirmation)",
    ),
    CommandSpec(
        Intent.LIST_ITEMS,
        ("/查看", "/列表", "/list"),
        "/list my mr",
        "List open issues or merge requests",
    ),
    CommandSpec(
        Intent.SUMMARIZE_ITEM,
        ("/总结", "/summarize", "/summary"),
        "/summarize #123",
        "Summarize an issue and its discussion",
    ),
    CommandSpec(
        Intent.CLOSE_ITEM,
        ("/关闭", "/close"),
        "/close #45 delivered at https://superset.example.com/dashboard/1",
        "Close an issue with a delivery link (asks for confirmation)",
    ),
    CommandSpec(
        Intent.LINK_EXISTING,
        ("/关联", "/绑定", "/link"),
        "/link #789",
        "Link this thread to an existing issue",
    ),
    CommandSpec(
        Intent.ASSIGN_SELF,
        ("/认领", "/assign", "/claim"),
        "/assign",
        "Assign the linked issue to yourself",
    ),
    CommandSpec(
        Intent.UPDATE_LINKED_ITEM,
        ("/补充", "/update", "/note"),
        "/update rerun finished, numbers look right",
        "Add a note to the linked issue",
    ),
    CommandSpec(
        Intent.SEARCH_HISTORY,
        ("/搜索", "/search"),
        "/search deployment",
        "Search recent chat history",
    ),
    CommandSpec(
        Intent.READ_DOCUMENT,
        ("/文档", "/doc", "/read"),
        "/doc https://example.feishu.cn/docx/abc",
        "Read a document",
    ),
    CommandSpec(
        Intent.COLLECT_FEEDBACK,
        ("/收集", "/collect", "/feedback"),
        "/collect @alice @bob",
        "Summarize feedback from chat members",
    ),
    CommandSpec(
        Intent.REVIEW_CHANGES,
        ("/评审", "/review"),
        "/review !42",
        "Review a merge request, or list MRs awaiting your review",
    ),
]

HELP_COMMANDS: tuple[str, ...] = ("/帮助", "/help", "/?")

SLASH_COMMANDS: dict[str, Intent] = {
    alias: spec.intent for spec in COMMAND_SPECS for alias in spec.aliases
}

_COMMAND_TOKEN = re.compile(r"^/(\S+)")


@dataclass
class CommandMatch:
    """Result of matching a slash command.

    Attributes:
        command: Normalized command token (lowercase, with slash)
        intent: Mapped intent, or None for an unrecognized command
        remaining: Text after the command token, trimmed
        params: Extracted parameters (issueId for numeric-reference commands)
    """

    command: str
    intent: Intent | None
    remaining: str = ""
    params: dict[str, str] = field(default_factory=dict)

    @property
    def recognized(self) -> bool:
        return self.intent is not None


def looks_like_path(text: str) -> bool:
    """Check if text looks like a file path rather than a command.

    Args:
        text: Text starting with /

    Returns:
        True if text appears to be a path
    """
    path_patterns = [
        r"^/[a-zA-Z]:/",  # Windows absolute: /C:/
        r"^/(?:home|usr|var|etc|tmp|opt)/",  # Unix paths
        r"^/\w+/\w+",  # Multi-level paths
        r"^/\S+\.\w+(?:\s|$)",  # File extension
    ]
    return any(re.search(p, text) for p in path_patterns)


def parse_command(text: str) -> CommandMatch | None:
    """Match a leading slash command.

    Args:
        text: Trimmed user input

    Returns:
        CommandMatch (intent None if the token is unknown), or None if the
        input does not start with a command token
    """
    match = _COMMAND_TOKEN.match(text)
    if not match:
        return None

    command = f"/{match.group(1).lower()}"
    remaining = text[match.end() :].strip()

    if command in HELP_COMMANDS:
        return CommandMatch(command=command, intent=Intent.HELP, remaining=remaining)

    intent = SLASH_COMMANDS.get(command)
    if intent is None:
        if looks_like_path(text):
            return None
        return CommandMatch(command=command, intent=None, remaining=remaining)

    params: dict[str, str] = {}
    if intent in ISSUE_REFERENCE_INTENTS:
        issue_id = extract_issue_number(remaining)
        if issue_id:
            params["issueId"] = issue_id

    return CommandMatch(command=command, intent=intent, remaining=remaining, params=params)


def format_command_help() -> str:
    """Build the usage text listing every command."""
    lines = ["**Commands**", ""]
    for spec in COMMAND_SPECS:
        aliases = " / ".join(spec.aliases)
        lines.append(f"- `{aliases}`: {spec.description}")
        lines.append(f"  e.g. `{spec.usage}`")
    lines.append(f"- `{' / '.join(HELP_COMMANDS)}`: Show this help")
    return "\n".join(lines)
