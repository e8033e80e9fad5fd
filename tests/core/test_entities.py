"""Tests for chatdesk.core.intent.entities.

Tests cover:
- Relative date resolution (English and CJK)
- Due date extraction from free text
- Mentions, issue numbers, URLs and document links
- Priority, labels and project paths
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from chatdesk.core.intent.entities import (
    extract_doc_url,
    extract_due_date,
    extract_entities,
    extract_issue_number,
    extract_labels,
    extract_mentions,
    extract_priority,
    extract_project,
    extract_urls,
    normalize_due_date,
    resolve_relative_date,
)

# 2024-01-10 is a Wednesday
WEDNESDAY = date(2024, 1, 10)


# ============================================================================
# Relative Dates
# ============================================================================


class TestResolveRelativeDate:
    """Tests for relative date phrases."""

    def test_tomorrow(self) -> None:
        assert resolve_relative_date("tomorrow", WEDNESDAY) == "2024-01-11"

    def test_today_accepts_datetime(self) -> None:
        assert resolve_relative_date("today", datetime(2024, 1, 10, 23, 59)) == "2024-01-10"

    def test_day_after_tomorrow(self) -> None:
        assert resolve_relative_date("day after tomorrow", WEDNESDAY) == "2024-01-12"
        assert resolve_relative_date("后天", WEDNESDAY) == "2024-01-12"

    def test_cjk_tomorrow(self) -> None:
        assert resolve_relative_date("明天", WEDNESDAY) == "2024-01-11"

    def test_next_same_weekday_is_a_week_out(self) -> None:
        """"next wednesday" on a Wednesday is strictly after today."""
        assert resolve_relative_date("next wednesday", WEDNESDAY) == "2024-01-17"

    def test_this_same_weekday_is_today(self) -> None:
        assert resolve_relative_date("this wednesday", WEDNESDAY) == "2024-01-10"

    def test_bare_weekday_upcoming(self) -> None:
        assert resolve_relative_date("friday", WEDNESDAY) == "2024-01-12"
        assert resolve_relative_date("mon", WEDNESDAY) == "2024-01-15"

    def test_next_weekday_case_and_spacing(self) -> None:
        assert resolve_relative_date("  Next   Friday ", WEDNESDAY) == "2024-01-12"

    def test_cjk_next_week(self) -> None:
        """下周五 is Friday of the following calendar week."""
        assert resolve_relative_date("下周五", WEDNESDAY) == "2024-01-19"
        assert resolve_relative_date("下周一", WEDNESDAY) == "2024-01-15"

    def test_cjk_this_week(self) -> None:
        assert resolve_relative_date("周五", WEDNESDAY) == "2024-01-12"
        assert resolve_relative_date("本周三", WEDNESDAY) == "2024-01-10"

    @pytest.mark.parametrize("phrase", ["", "   ", "someday", "next month"])
    def test_unknown_phrases(self, phrase: str) -> None:
        assert resolve_relative_date(phrase, WEDNESDAY) is None


class TestNormalizeDueDate:
    """Tests for explicit and relative date normalization."""

    def test_iso(self) -> None:
        assert normalize_due_date("2024-02-01", WEDNESDAY) == "2024-02-01"

    def test_iso_invalid_day(self) -> None:
        assert normalize_due_date("2024-02-30", WEDNESDAY) is None

    def test_month_day_uses_current_year(self) -> None:
        assert normalize_due_date("3/15", WEDNESDAY) == "2024-03-15"
        assert normalize_due_date("3-15", WEDNESDAY) == "2024-03-15"

    def test_relative(self) -> None:
        assert normalize_due_date("tomorrow", WEDNESDAY) == "2024-01-11"

    def test_empty(self) -> None:
        assert normalize_due_date(None, WEDNESDAY) is None
        assert normalize_due_date("  ", WEDNESDAY) is None


# ============================================================================
# Due Date Extraction
# ============================================================================


class TestExtractDueDate:
    """Tests for due dates in free text."""

    def test_ddl_keyword_relative(self) -> None:
        assert extract_due_date("fix pipeline, priority 2, ddl next wednesday", WEDNESDAY) == "2024-01-17"

    def test_iso_wins(self) -> None:
        assert extract_due_date("deadline: 2024-02-01 or tomorrow", WEDNESDAY) == "2024-02-01"

    def test_cjk_month_day(self) -> None:
        assert extract_due_date("截止 3月5日", WEDNESDAY) == "2024-03-05"

    def test_slash_month_day(self) -> None:
        assert extract_due_date("due 1/20", WEDNESDAY) == "2024-01-20"

    def test_numeric_range_is_not_a_date(self) -> None:
        assert extract_due_date("fix 2-3 failing dashboards, ddl tomorrow", WEDNESDAY) == "2024-01-11"
        assert extract_due_date("takes 3-4 days", WEDNESDAY) is None

    def test_dashed_month_day_after_keyword(self) -> None:
        assert extract_due_date("ddl 2-3", WEDNESDAY) == "2024-02-03"

    def test_bare_relative_keyword(self) -> None:
        assert extract_due_date("need this tomorrow please", WEDNESDAY) == "2024-01-11"

    def test_cjk_relative_keyword(self) -> None:
        assert extract_due_date("修复看板，下周五之前", WEDNESDAY) == "2024-01-19"

    def test_none(self) -> None:
        assert extract_due_date("fix the pipeline", WEDNESDAY) is None
        assert extract_due_date("", WEDNESDAY) is None


# ============================================================================
# Mentions, Issues and URLs
# ============================================================================


class TestReferences:
    """Tests for mention, issue and URL extraction."""

    def test_mentions_deduplicated_in_order(self) -> None:
        assert extract_mentions("@alice @bob thoughts? @alice") == ["alice", "bob"]

    def test_mentions_stop_at_punctuation(self) -> None:
        assert extract_mentions("ping @张三，and @bob:") == ["张三", "bob"]

    def test_mentions_empty(self) -> None:
        assert extract_mentions("") == []

    def test_issue_number_hash(self) -> None:
        assert extract_issue_number("close #42 now") == "42"

    def test_issue_number_bare(self) -> None:
        assert extract_issue_number("42 delivered") == "42"

    def test_issue_number_skips_urls(self) -> None:
        assert extract_issue_number("see https://git.example.com/x/-/issues/7 and !12") == "12"

    def test_issue_number_inline(self) -> None:
        assert extract_issue_number("看一下 #88 的进展") == "88"

    def test_issue_number_none(self) -> None:
        assert extract_issue_number("no reference here") is None

    def test_urls(self) -> None:
        text = "see https://a.example.com/x and http://b.example.org/y"
        assert extract_urls(text) == ["https://a.example.com/x", "http://b.example.org/y"]

    def test_urls_stop_at_cjk_punctuation(self) -> None:
        assert extract_urls("看这个https://a.example.com/x。") == ["https://a.example.com/x"]

    def test_doc_url(self) -> None:
        text = "https://github.com/x then https://example.feishu.cn/docx/AbC123 please"
        assert extract_doc_url(text) == "https://example.feishu.cn/docx/AbC123"

    def test_doc_url_custom_pattern(self) -> None:
        assert extract_doc_url("https://wiki.corp/page/1", r"wiki\.corp/") == "https://wiki.corp/page/1"

    def test_doc_url_invalid_pattern(self) -> None:
        assert extract_doc_url("https://wiki.corp/page/1", "(") is None

    def test_doc_url_none(self) -> None:
        assert extract_doc_url("https://github.com/x") is None


# ============================================================================
# Priority, Labels and Project
# ============================================================================


class TestIssueFields:
    """Tests for issue metadata extraction."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("priority 2", "2"),
            ("priority: P3", "3"),
            ("P1 bug in export", "1"),
            ("优先级3", "3"),
            ("urgent: dashboard down", "1"),
            ("紧急修复", "1"),
            ("nothing special", None),
        ],
    )
    def test_priority(self, text: str, expected: str | None) -> None:
        assert extract_priority(text) == expected

    def test_labels_marker_and_hashtags(self) -> None:
        assert extract_labels("label: etl+infra #dashboard") == ["etl", "infra", "dashboard"]

    def test_numeric_hashtag_is_not_label(self) -> None:
        assert extract_labels("see #42") == []

    def test_project_in(self) -> None:
        assert extract_project("create issue in dpa/analytics: fix it") == "dpa/analytics"

    def test_project_repo_flag(self) -> None:
        assert extract_project("-R dpa/dbt") == "dpa/dbt"

    def test_project_none(self) -> None:
        assert extract_project("fix the pipeline") is None


class TestExtractEntities:
    """Tests for the combined extractor."""

    def test_all_fields(self) -> None:
        entities = extract_entities(
            "fix export in dpa/analytics, P2, ddl tomorrow @alice https://example.feishu.cn/docx/abc",
            now=WEDNESDAY,
        )

        assert entities.due_date == "2024-01-11"
        assert entities.priority == "2"
        assert entities.project == "dpa/analytics"
        assert entities.mentions == ["alice"]
        assert entities.doc_url == "https://example.feishu.cn/docx/abc"

    def test_to_dict_drops_empty(self) -> None:
        data = extract_entities("hello", now=WEDNESDAY).to_dict()
        assert data == {}
