"""Tests for the glab issue tracker and its project guardrail."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chatdesk.core.backends.glab import (
    GlabIssueTracker,
    GuardrailViolation,
    enforce_repo_guardrail,
)

ALLOWED = ["dpa/dpa-mom/task", "dpa/dagster"]

# =============================================================================
# Guardrail
# =============================================================================


class TestEnforceRepoGuardrail:
    """Tests for enforce_repo_guardrail."""

    def test_injects_default_project(self) -> None:
        args = enforce_repo_guardrail(["issue", "view", "42"], ALLOWED, "dpa/dpa-mom/task")

        assert args == ["issue", "view", "42", "-R", "dpa/dpa-mom/task"]

    def test_allowed_repo_kept(self) -> None:
        args = enforce_repo_guardrail(["issue", "close", "7", "-R", "dpa/dagster"], ALLOWED, "dpa/dpa-mom/task")

        assert args == ["issue", "close", "7", "-R", "dpa/dagster"]

    def test_repo_equals_form(self) -> None:
        args = enforce_repo_guardrail(["issue", "list", "--repo=dpa/dagster"], ALLOWED, "dpa/dpa-mom/task")

        assert "-R" not in args

    def test_disallowed_repo_rejected(self) -> None:
        with pytest.raises(GuardrailViolation, match="Project not allowed: other/repo"):
            enforce_repo_guardrail(["issue", "list", "-R", "other/repo"], ALLOWED, "dpa/dpa-mom/task")

    def test_disallowed_repo_equals_form_rejected(self) -> None:
        with pytest.raises(GuardrailViolation):
            enforce_repo_guardrail(["mr", "list", "--repo=other/repo"], ALLOWED, "dpa/dpa-mom/task")

    def test_repo_flag_without_value(self) -> None:
        with pytest.raises(GuardrailViolation, match="requires a project"):
            enforce_repo_guardrail(["issue", "list", "-R"], ALLOWED, "dpa/dpa-mom/task")

    def test_group_scoped_command_untouched(self) -> None:
        args = enforce_repo_guardrail(["mr", "list", "-g", "dpa", "--reviewer=@me"], ALLOWED, "dpa/dpa-mom/task")

        assert args == ["mr", "list", "-g", "dpa", "--reviewer=@me"]

    def test_disallowed_subcommand(self) -> None:
        with pytest.raises(GuardrailViolation, match="not allowed: api"):
            enforce_repo_guardrail(["api", "projects"], ALLOWED, "dpa/dpa-mom/task")

    def test_empty_command(self) -> None:
        with pytest.raises(GuardrailViolation, match="Empty"):
            enforce_repo_guardrail([], ALLOWED, "dpa/dpa-mom/task")

    def test_empty_allow_list_allows_any(self) -> None:
        args = enforce_repo_guardrail(["issue", "list", "-R", "any/repo"], [], "")

        assert args == ["issue", "list", "-R", "any/repo"]


# =============================================================================
# Subprocess execution
# =============================================================================


def make_process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.kill = MagicMock()
    proc.wait = AsyncMock()
    return proc


@pytest.fixture
def tracker() -> GlabIssueTracker:
    return GlabIssueTracker(
        allowed_projects=ALLOWED,
        default_project="dpa/dpa-mom/task",
        gitlab_host="git.example.com",
        timeout=5.0,
    )


class TestGlabIssueTrackerRun:
    """Tests for GlabIssueTracker.run."""

    @pytest.mark.asyncio
    async def test_success(self, tracker: GlabIssueTracker) -> None:
        proc = make_process(stdout=b"https://git.example.com/dpa/dpa-mom/task/-/issues/12\n")

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as mock_exec:
            result = await tracker.run('issue create --title "Fix login" --yes')

        assert result.success
        assert "issues/12" in result.output
        args = mock_exec.call_args.args
        assert args[:5] == ("glab", "issue", "create", "--title", "Fix login")
        assert args[-2:] == ("-R", "dpa/dpa-mom/task")
        assert mock_exec.call_args.kwargs["env"]["GITLAB_HOST"] == "git.example.com"

    @pytest.mark.asyncio
    async def test_strips_leading_glab(self, tracker: GlabIssueTracker) -> None:
        proc = make_process(stdout=b"ok")

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as mock_exec:
            await tracker.run("glab issue list -R dpa/dagster")

        assert mock_exec.call_args.args == ("glab", "issue", "list", "-R", "dpa/dagster")

    @pytest.mark.asyncio
    async def test_guardrail_rejection_never_spawns(self, tracker: GlabIssueTracker) -> None:
        with patch("asyncio.create_subprocess_exec", AsyncMock()) as mock_exec:
            result = await tracker.run("issue close 3 -R someone/else")

        assert not result.success
        assert "not allowed" in result.error
        mock_exec.assert_not_called()

    @pytest.mark.asyncio
    async def test_unbalanced_quotes(self, tracker: GlabIssueTracker) -> None:
        result = await tracker.run('issue create --title "oops')

        assert not result.success
        assert result.error.startswith("Invalid command")

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tracker: GlabIssueTracker) -> None:
        proc = make_process(returncode=1, stderr=b"404 Not Found\n")

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await tracker.run("issue view 999")

        assert not result.success
        assert result.error == "404 Not Found"

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_stderr(self, tracker: GlabIssueTracker) -> None:
        proc = make_process(returncode=2)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await tracker.run("issue view 999")

        assert result.error == "glab exited with code 2"

    @pytest.mark.asyncio
    async def test_glab_missing(self, tracker: GlabIssueTracker) -> None:
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError())):
            result = await tracker.run("issue list")

        assert not result.success
        assert "glab CLI not found" in result.error

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tracker: GlabIssueTracker) -> None:
        proc = make_process()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await tracker.run("issue list")

        assert not result.success
        assert "timed out" in result.error
        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    def test_env_without_host(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            env = GlabIssueTracker()._env()

        assert "GITLAB_HOST" not in env
