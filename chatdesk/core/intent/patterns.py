"""Keyword rule families for chatdesk intent classification (stages 3-4).

Regex rules run in well under a millisecond and settle the unambiguous
cases before the LLM is consulted. There are three families:

- context rules, evaluated only when the thread is linked to an issue
  ("assign this to me", "additional info: ...")
- relational rules that name an issue number ("link to #12", "close #12")
- keyword rules for the remaining deterministic intents
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .taxonomy import Intent

# Named group carrying the issue number in relational rules
ISSUE_GROUP = "issue"


@dataclass
class PatternMatch:
    """Result of pattern matching.

    Attributes:
        intent: Matched intent
        confidence: Weight of the strongest matching rule, 0.0-1.0
        params: Parameters captured by the rule (issueId, help)
        matched_patterns: Every rule of the winning intent that matched
    """

    intent: Intent
    confidence: float
    params: dict[str, str] = field(default_factory=dict)
    matched_patterns: list[str] = field(default_factory=list)


RuleTable = dict[Intent, list[tuple[str, float]]]


class IntentPatternMatcher:
    """Regex-based intent classification.

    Each family maps intents to (pattern, weight) rules. Within a family the
    intent whose strongest rule weighs the most wins; ties go to the intent
    declared first.
    """

    # Only meaningful when the thread already has a linked issue
    CONTEXT_PATTERNS: RuleTable = {
        Intent.ASSIGN_SELF: [
            (r"\b(assign|give)\s+(this|it)\s+to\s+me\b", 0.95),
            (r"\bi'?ll\s+(take|handle|own|pick\s+up)\s+(this|it)\b", 0.9),
            (r"\b(claim|take)\s+(this|it)\b", 0.85),
            (r"(分配|指派|转)给我", 0.95),
            (r"我(来)?(认领|负责|跟进)", 0.9),
            (r"我来(做|处理|搞|弄)", 0.9),
            (r"^认领", 0.85),
        ],
        Intent.UPDATE_LINKED_ITEM: [
            (r"\b(additional|more|extra)\s+(info|information|context|details)\b", 0.9),
            (r"\b(fyi|update|note)\s*[:：]", 0.85),
            (r"\badd(ing)?\s+(a\s+)?note\b", 0.85),
            (r"补充(一下|信息|说明|几点|[:：])?", 0.9),
            (r"(更新|同步)(一下)?(进展|进度|状态)", 0.8),
            (r"^(另外|还有)[,，:：]", 0.6),
        ],
    }

    RELATIONAL_PATTERNS: RuleTable = {
        Intent.LINK_EXISTING: [
            (
                r"\b(link|bind|associate|attach)\s+(this\s+)?(thread\s+)?(to|with)\s+"
                r"(issue\s+)?[#!]?(?P<issue>\d+)\b",
                0.95,
            ),
            (r"(关联|绑定)(到|上)?\s*(issue\s*)?[#!]?(?P<issue>\d+)", 0.95),
        ],
        Intent.SUMMARIZE_ITEM: [
            (r"\b(summari[sz]e|recap)\s+(issue\s+)?[#!]?(?P<issue>\d+)\b", 0.95),
            (r"总结(一下)?\s*(issue\s*)?[#!]?(?P<issue>\d+)", 0.95),
            (r"[#!](?P<issue>\d+)\s*(的)?\s*(总结|进展|摘要)", 0.85),
        ],
        Intent.CLOSE_ITEM: [
            (r"\bclose\s+(issue\s+)?[#!]?(?P<issue>\d+)\b", 0.95),
            (r"关闭\s*(issue\s*)?[#!]?(?P<issue>\d+)", 0.95),
            (r"\b(resolve|finish)\s+(issue\s+)?#(?P<issue>\d+)\b", 0.85),
        ],
    }

    KEYWORD_PATTERNS: RuleTable = {
        Intent.COLLECT_FEEDBACK: [
            (r"(总结|收集|汇总).*反馈", 0.9),
            (r"整理.*意见", 0.85),
            (r"\b(summari[sz]e|collect|gather)\b.*\bfeedback\b", 0.9),
        ],
        Intent.CREATE_ITEM: [
            (r"\b(create|open|file|raise)\b.*\b(issue|bug|ticket)\b", 0.9),
            (r"(创建|新建|开).*(issue|问题|工单|bug|需求)", 0.9),
            (r"^新建", 0.8),
            (r"提(个|一个)", 0.8),
            (r"记录.*问题", 0.8),
        ],
        Intent.REVIEW_CHANGES: [
            (r"\breview\b.*\b(mr|mrs|merge\s+requests?|pr|prs)\b", 0.9),
            (r"\bcode\s*review\b", 0.85),
            (r"评审|代码审查", 0.85),
            (r"(待|等)(我)?.*review", 0.85),
        ],
        Intent.LIST_ITEMS: [
            (r"列出", 0.85),
            (r"\b(show|list)\b.*\b(issues?|mrs?|merge\s+requests?|tickets?)\b", 0.85),
            (r"查看.*(issue|工单|mr)", 0.85),
            (r"我的.*(issue|工单|mr)", 0.8),
        ],
        Intent.SEARCH_HISTORY: [
            (r"最近.*聊", 0.85),
            (r"群里.*(说|聊|讨论)", 0.85),
            (r"\bchat\s+history\b", 0.9),
            (r"搜.*(消息|记录)", 0.85),
            (r"\bsearch\b.*\b(chat|messages?)\b", 0.85),
        ],
        Intent.READ_DOCUMENT: [
            (r"(读|看|打开).*文档", 0.85),
            (r"\b(read|open)\b.*\b(doc|docs|document)\b", 0.85),
        ],
        # Capability questions answered with the usage text
        Intent.GENERAL_CHAT: [
            (r"^(what\s+can\s+you\s+do|how\s+do\s+i\s+use\s+(you|this))\s*[?？]*$", 0.9),
            (r"^(你能做什么|你会什么|怎么用|使用说明)\s*[?？]*$", 0.9),
        ],
    }

    def __init__(self) -> None:
        """Initialize the pattern matcher with compiled regexes."""
        self._context = self._compile(self.CONTEXT_PATTERNS)
        self._relational = self._compile(self.RELATIONAL_PATTERNS)
        self._keywords = self._compile(self.KEYWORD_PATTERNS)

    @staticmethod
    def _compile(table: RuleTable) -> dict[Intent, list[tuple[re.Pattern[str], float]]]:
        return {
            intent: [(re.compile(pattern, re.IGNORECASE), weight) for pattern, weight in rules]
            for intent, rules in table.items()
        }

    def match_context(self, text: str) -> PatternMatch | None:
        """Match rules that only apply inside a linked thread."""
        return self._best(self._context, text)

    def match_relational(self, text: str) -> PatternMatch | None:
        """Match rules that name an issue number."""
        return self._best(self._relational, text)

    def match_keywords(self, text: str) -> PatternMatch | None:
        """Match the deterministic keyword families."""
        result = self._best(self._keywords, text)
        if result is not None and result.intent == Intent.GENERAL_CHAT:
            result.params["help"] = "true"
        return result

    def _best(
        self,
        compiled: dict[Intent, list[tuple[re.Pattern[str], float]]],
        text: str,
    ) -> PatternMatch | None:
        """Score text against a rule family and return the best match.

        Args:
            compiled: Compiled rule family
            text: User input text

        Returns:
            PatternMatch for the winning intent, or None if nothing matched
        """
        best: PatternMatch | None = None

        for intent, rules in compiled.items():
            max_score = 0.0
            matches: list[str] = []
            params: dict[str, str] = {}

            for pattern, weight in rules:
                found = pattern.search(text)
                if not found:
                    continue
                matches.append(pattern.pattern)
                if weight > max_score:
                    max_score = weight
                if ISSUE_GROUP in pattern.groupindex and "issueId" not in params:
                    issue = found.group(ISSUE_GROUP)
                    if issue:
                        params["issueId"] = issue

            if max_score > 0 and (best is None or max_score > best.confidence):
                best = PatternMatch(
                    intent=intent,
                    confidence=max_score,
                    params=params,
                    matched_patterns=matches,
                )

        return best


__all__ = ["IntentPatternMatcher", "PatternMatch"]
