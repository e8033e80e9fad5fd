"""glab CLI issue tracker for chatdesk.

Runs GitLab CLI commands as subprocesses. Commands are restricted to a set
of top-level glab subcommands and to the configured projects: any -R/--repo
outside allowed_projects is rejected, and repo-scoped commands without a
repo (and without --group) get the default project injected.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex

from .base import IssueTracker, TrackerResult

logger = logging.getLogger(__name__)

# Top-level glab subcommands the assistant may run
ALLOWED_SUBCOMMANDS = {"issue", "mr", "ci", "label", "milestone", "release"}

REPO_FLAGS = ("-R", "--repo")
GROUP_FLAGS = ("-g", "--group")


class GuardrailViolation(ValueError):
    """A command tried to leave the allowed projects or subcommands."""


def enforce_repo_guardrail(
    args: list[str],
    allowed_projects: list[str],
    default_project: str,
) -> list[str]:
    """Check and complete the repo scope of a glab argument list.

    Args:
        args: glab arguments without the executable
        allowed_projects: Projects commands may target (empty allows any)
        default_project: Project injected when a repo-scoped command has none

    Returns:
        The argument list, with -R default_project appended when needed

    Raises:
        GuardrailViolation: If the subcommand or a named repo is not allowed
    """
    if not args:
        raise GuardrailViolation("Empty glab command")
    if args[0] not in ALLOWED_SUBCOMMANDS:
        raise GuardrailViolation(f"glab subcommand not allowed: {args[0]}")

    repos: list[str] = []
    has_group = False
    for i, arg in enumerate(args):
        if arg in REPO_FLAGS:
            if i + 1 >= len(args):
                raise GuardrailViolation(f"{arg} requires a project")
            repos.append(args[i + 1])
        elif arg.startswith("--repo="):
            repos.append(arg.split("=", 1)[1])
        elif arg in GROUP_FLAGS or arg.startswith("--group="):
            has_group = True

    for repo in repos:
        if allowed_projects and repo not in allowed_projects:
            raise GuardrailViolation(f"Project not allowed: {repo}")

    if not repos and not has_group and default_project:
        return [*args, "-R", default_project]
    return list(args)


class GlabIssueTracker(IssueTracker):
    """Runs glab commands with a project guardrail.

    Example:
        tracker = GlabIssueTracker(allowed_projects=["dpa/dpa-mom/task"], gitlab_host="git.example.com")
        result = await tracker.run("issue list --assignee=@me")

    Attributes:
        glab_path: glab executable
        allowed_projects: Projects commands may target
        default_project: Project injected into repo-scoped commands
        gitlab_host: Exported as GITLAB_HOST when set
        timeout: Seconds before a command is killed
    """

    def __init__(
        self,
        glab_path: str = "glab",
        allowed_projects: list[str] | None = None,
        default_project: str = "",
        gitlab_host: str = "",
        timeout: float = 30.0,
    ) -> None:
        self.glab_path = glab_path
        self.allowed_projects = list(allowed_projects or [])
        self.default_project = default_project
        self.gitlab_host = gitlab_host
        self.timeout = timeout

    def _env(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.gitlab_host:
            env["GITLAB_HOST"] = self.gitlab_host
        return env

    async def run(self, command: str) -> TrackerResult:
        """Run a glab command given without the leading "glab".

        Never raises: guardrail rejections, a missing executable, timeouts
        and non-zero exits are all reported as success=False.
        """
        try:
            args = shlex.split(command)
        except ValueError as e:
            return TrackerResult(success=False, error=f"Invalid command: {e}")
        if args and args[0] == "glab":
            args = args[1:]

        try:
            args = enforce_repo_guardrail(args, self.allowed_projects, self.default_project)
        except GuardrailViolation as e:
            logger.warning(f"glab guardrail rejected {command!r}: {e}")
            return TrackerResult(success=False, error=str(e))

        logger.info(f"Running glab {shlex.join(args)[:200]}")

        try:
            proc = await asyncio.create_subprocess_exec(
                self.glab_path,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(),
            )
        except FileNotFoundError:
            return TrackerResult(
                success=False,
                error="glab CLI not found. Install it from https://gitlab.com/gitlab-org/cli",
            )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return TrackerResult(success=False, error=f"glab timed out after {self.timeout}s")

        out = stdout.decode("utf-8", errors="replace") if stdout else ""
        err = stderr.decode("utf-8", errors="replace") if stderr else ""

        if proc.returncode != 0:
            return TrackerResult(
                success=False,
                output=out,
                error=err.strip() or f"glab exited with code {proc.returncode}",
            )
        return TrackerResult(success=True, output=out or err)


__all__ = ["GlabIssueTracker", "GuardrailViolation", "enforce_repo_guardrail"]
