"""Parameter extraction for chatdesk intent parsing.

Pure functions that turn raw chat text into typed fields: due dates,
@mentions, issue numbers, URLs, priority, labels and project paths.
Every function is total: it returns None (or an empty list) instead of
raising when nothing matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

# Matches Feishu/Lark document, wiki, sheet and base links
DEFAULT_DOC_HOST_PATTERN = r"(?:feishu\.cn|larksuite\.com|larkoffice\.com)/(?:docs|docx|wiki|sheets|base)/"

# Weekday aliases -> date.weekday() index (Monday = 0)
WEEKDAY_ALIASES: dict[str, int] = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tue": 1,
    "tues": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thu": 3,
    "thur": 3,
    "thurs": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sat": 5,
    "sunday": 6,
    "sun": 6,
}

CJK_WEEKDAYS: dict[str, int] = {
    "一": 0,
    "二": 1,
    "三": 2,
    "四": 3,
    "五": 4,
    "六": 5,
    "日": 6,
    "天": 6,
    "1": 0,
    "2": 1,
    "3": 2,
    "4": 3,
    "5": 4,
    "6": 5,
    "7": 6,
}

_TODAY = {"today", "今天", "今日", "今"}
_TOMORROW = {"tomorrow", "明天", "明日"}
_DAY_AFTER = {"day after tomorrow", "后天"}

_EN_WEEKDAY = re.compile(r"^(?:(this|next|coming)\s*)?(" + "|".join(WEEKDAY_ALIASES) + r")$")
_CJK_WEEKDAY = re.compile(r"^(本|这|下)?(?:周|星期|礼拜)([一二三四五六日天1-7])$")

PATTERNS = {
    "iso_date": re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b"),
    "cjk_month_day": re.compile(r"(\d{1,2})\s*月\s*(\d{1,2})\s*(?:日|号)?"),
    "month_day": re.compile(r"(?<![\d/-])(\d{1,2})/(\d{1,2})(?![\d/-])"),
    # 1-15 reads as a range in running text, so only after a due keyword
    "dashed_month_day": re.compile(r"(\d{1,2})-(\d{1,2})"),
    "due_keyword": re.compile(
        r"(?:截止|到期|\b(?:deadline|ddl|due|before|by)\b)\s*(?:date)?\s*[:：]?\s*"
        r"([^\s,，;；]+(?:\s+[^\s,，;；]+)?)",
        re.IGNORECASE,
    ),
    "mention": re.compile(r"@([^\s@,，;；:：]+)"),
    "url": re.compile(r"https?://[^\s<>\"'，。；）)\]]+"),
    "priority": re.compile(r"(?:priority|prio|优先级)\s*[:：=]?\s*[pP]?([1-4])", re.IGNORECASE),
    "priority_short": re.compile(r"(?<![\w-])[pP]([1-4])(?![\w-])"),
    "priority_urgent": re.compile(r"\b(?:urgent|critical|asap)\b|紧急|加急", re.IGNORECASE),
    "label": re.compile(r"(?:labels?|tags?|标签)\s*[:：]\s*([\w\u4e00-\u9fff:+./-]+)", re.IGNORECASE),
    "hashtag": re.compile(r"(?<![\w&#/])#([A-Za-z\u4e00-\u9fff][\w\u4e00-\u9fff-]*)"),
    "project": re.compile(
        r"(?:\bin|-R|--repo|\bproject|项目)\s*[:：=]?\s*([A-Za-z0-9_.-]+(?:/[A-Za-z0-9_.-]+)+)",
        re.IGNORECASE,
    ),
    "issue_token": re.compile(r"[#!]?(\d+)[,，.。:：)）]?"),
    "issue_inline": re.compile(r"[#!](\d+)\b"),
}

# Relative keywords scanned anywhere in free text, most specific first
RELATIVE_SCAN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b(?:next|this|coming)\s+(?:" + "|".join(WEEKDAY_ALIASES) + r")\b", re.IGNORECASE),
    re.compile(r"(?:下|本|这)(?:周|星期|礼拜)[一二三四五六日天1-7]"),
    re.compile(r"(?:周|星期|礼拜)[一二三四五六日天]"),
    re.compile(r"\bday after tomorrow\b|后天", re.IGNORECASE),
    re.compile(r"\btomorrow\b|明天|明日", re.IGNORECASE),
    re.compile(r"\btoday\b|今天|今日", re.IGNORECASE),
]


def _as_date(now: date | datetime) -> date:
    return now.date() if isinstance(now, datetime) else now


def format_date(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.strftime("%Y-%m-%d")


def _upcoming(today: date, weekday: int, include_today: bool) -> date:
    offset = (weekday - today.weekday()) % 7
    if offset == 0 and not include_today:
        offset = 7
    return today + timedelta(days=offset)


def resolve_relative_date(text: str, now: date | datetime) -> str | None:
    """Resolve a relative date phrase to an absolute YYYY-MM-DD string.

    "next <weekday>" is the next occurrence strictly after today, so on a
    Wednesday "next wednesday" is one week out. "this <weekday>" and a bare
    weekday include today. 下周X is day X of the following calendar week.

    Args:
        text: A short phrase such as "tomorrow", "next wednesday" or "下周五"
        now: Reference point for the resolution

    Returns:
        Date string, or None if the phrase is not a known relative date
    """
    if not text:
        return None
    normalized = re.sub(r"\s+", " ", text.strip().lower())
    if not normalized:
        return None

    today = _as_date(now)

    if normalized in _TODAY:
        return format_date(today)
    if normalized in _TOMORROW:
        return format_date(today + timedelta(days=1))
    if normalized in _DAY_AFTER:
        return format_date(today + timedelta(days=2))

    match = _EN_WEEKDAY.match(normalized)
    if match:
        qualifier, name = match.groups()
        weekday = WEEKDAY_ALIASES[name]
        include_today = qualifier in (None, "this")
        return format_date(_upcoming(today, weekday, include_today))

    match = _CJK_WEEKDAY.match(normalized)
    if match:
        qualifier, day = match.groups()
        weekday = CJK_WEEKDAYS[day]
        if qualifier == "下":
            next_monday = today + timedelta(days=7 - today.weekday())
            return format_date(next_monday + timedelta(days=weekday))
        return format_date(_upcoming(today, weekday, include_today=True))

    return None


def _safe_date(year: int, month: int, day: int) -> str | None:
    try:
        return format_date(date(year, month, day))
    except ValueError:
        return None


def normalize_due_date(raw: str | None, now: date | datetime) -> str | None:
    """Normalize an explicit or relative date string to YYYY-MM-DD.

    Accepts ISO dates, month/day pairs (current year) and any phrase
    understood by resolve_relative_date.
    """
    if not raw:
        return None
    trimmed = str(raw).strip()
    if not trimmed:
        return None

    match = PATTERNS["iso_date"].fullmatch(trimmed)
    if match:
        return _safe_date(*(int(g) for g in match.groups()))

    relative = resolve_relative_date(trimmed, now)
    if relative:
        return relative

    match = PATTERNS["month_day"].fullmatch(trimmed) or PATTERNS["dashed_month_day"].fullmatch(trimmed)
    if match:
        month, day = (int(g) for g in match.groups())
        return _safe_date(_as_date(now).year, month, day)

    return None


def extract_due_date(text: str, now: date | datetime) -> str | None:
    """Extract a due date from free text.

    Preference order: ISO date, explicit month/day, keyword-introduced
    phrase (ddl/due/by/截止), bare relative keyword. Once a more specific
    form matches, the less specific scans are skipped.

    Args:
        text: Free text such as "fix pipeline, ddl next wednesday"
        now: Reference point for relative phrases

    Returns:
        Date string, or None
    """
    if not text:
        return None

    for match in PATTERNS["iso_date"].finditer(text):
        resolved = _safe_date(*(int(g) for g in match.groups()))
        if resolved:
            return resolved

    year = _as_date(now).year
    for key in ("cjk_month_day", "month_day"):
        for match in PATTERNS[key].finditer(text):
            month, day = (int(g) for g in match.groups())
            resolved = _safe_date(year, month, day)
            if resolved:
                return resolved

    for match in PATTERNS["due_keyword"].finditer(text):
        phrase = match.group(1)
        resolved = normalize_due_date(phrase, now)
        if resolved:
            return resolved
        first_word = phrase.split()[0] if phrase.split() else ""
        resolved = normalize_due_date(first_word, now)
        if resolved:
            return resolved

    for pattern in RELATIVE_SCAN_PATTERNS:
        match = pattern.search(text)
        if match:
            resolved = resolve_relative_date(match.group(0), now)
            if resolved:
                return resolved

    return None


def extract_mentions(text: str) -> list[str]:
    """Extract @mentions in order of appearance, without duplicates."""
    if not text:
        return []
    seen: list[str] = []
    for match in PATTERNS["mention"].finditer(text):
        name = match.group(1).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def extract_issue_number(text: str) -> str | None:
    """Extract the first integer-like issue reference ("#12", "!12", "12")."""
    if not text:
        return None
    for token in text.split():
        if "://" in token:
            continue
        match = PATTERNS["issue_token"].fullmatch(token)
        if match:
            return match.group(1)
    match = PATTERNS["issue_inline"].search(text)
    if match:
        return match.group(1)
    return None


def extract_urls(text: str) -> list[str]:
    """Extract every http(s) URL in order of appearance."""
    if not text:
        return []
    return [match.group(0) for match in PATTERNS["url"].finditer(text)]


def extract_doc_url(text: str, host_pattern: str = DEFAULT_DOC_HOST_PATTERN) -> str | None:
    """Extract the first URL whose host/path matches the document host pattern."""
    try:
        host_re = re.compile(host_pattern, re.IGNORECASE)
    except re.error:
        return None
    for url in extract_urls(text):
        if host_re.search(url):
            return url
    return None


def extract_priority(text: str) -> str | None:
    """Extract a 1-4 priority ("priority 2", "P1", "优先级3"); urgent words map to 1."""
    if not text:
        return None
    match = PATTERNS["priority"].search(text)
    if match:
        return match.group(1)
    match = PATTERNS["priority_short"].search(text)
    if match:
        return match.group(1)
    if PATTERNS["priority_urgent"].search(text):
        return "1"
    return None


def extract_labels(text: str) -> list[str]:
    """Extract labels from "label: x" / "tag: x" markers and non-numeric #hashtags."""
    if not text:
        return []
    labels: list[str] = []
    for match in PATTERNS["label"].finditer(text):
        for part in re.split(r"[+/|]", match.group(1)):
            part = part.strip()
            if part and part not in labels:
                labels.append(part)
    for match in PATTERNS["hashtag"].finditer(text):
        tag = match.group(1)
        if tag not in labels:
            labels.append(tag)
    return labels


def extract_project(text: str) -> str | None:
    """Extract a group/project path ("in dpa/analytics", "-R dpa/dbt", "项目 dpa/x")."""
    if not text:
        return None
    url_spans = [m.span() for m in PATTERNS["url"].finditer(text)]
    for match in PATTERNS["project"].finditer(text):
        start = match.start(1)
        if any(lo <= start < hi for lo, hi in url_spans):
            continue
        return match.group(1).rstrip(".")
    return None


@dataclass
class ExtractedEntities:
    """Container for entities extracted from user input.

    Attributes:
        due_date: Due date (YYYY-MM-DD)
        priority: Priority 1-4
        labels: Labels and hashtags
        project: group/project path
        mentions: @mentioned users
        urls: Every URL in the text
        doc_url: First document-host URL
        issue_number: First issue reference
    """

    due_date: str | None = None
    priority: str | None = None
    labels: list[str] = field(default_factory=list)
    project: str | None = None
    mentions: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    doc_url: str | None = None
    issue_number: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, excluding empty values."""
        return {k: v for k, v in self.__dict__.items() if v not in (None, [], "")}


def extract_entities(
    text: str,
    now: date | datetime | None = None,
    doc_host_pattern: str = DEFAULT_DOC_HOST_PATTERN,
) -> ExtractedEntities:
    """Run every extractor over the text.

    Args:
        text: User input text
        now: Reference point for relative dates (defaults to the current time)
        doc_host_pattern: Regex identifying document URLs

    Returns:
        ExtractedEntities with all detected entities
    """
    now = now or datetime.now()
    return ExtractedEntities(
        due_date=extract_due_date(text, now),
        priority=extract_priority(text),
        labels=extract_labels(text),
        project=extract_project(text),
        mentions=extract_mentions(text),
        urls=extract_urls(text),
        doc_url=extract_doc_url(text, doc_host_pattern),
        issue_number=extract_issue_number(text),
    )
