"""End-to-end tests for AssistantWorkflow.

Each test runs a message through classification, routing, a real handler
and formatting, with only the collaborators mocked.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatdesk.config import AppConfig
from chatdesk.core.backends.base import TrackerResult
from chatdesk.core.backends.feishu import FeishuChatHistory, FeishuDocReader, FeishuTaskTracker
from chatdesk.core.backends.store import JsonLinkedReferenceStore, MemoryLinkedReferenceStore
from chatdesk.core.errors import CollaboratorError, CompletionError
from chatdesk.core.handlers import HandlerDeps, build_handlers
from chatdesk.core.intent import ConversationContext, Intent, IntentClassifier, LinkedReference
from chatdesk.core.router import BranchRouter
from chatdesk.core.workflow import AssistantWorkflow, create_workflow

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def tracker() -> AsyncMock:
    tracker = AsyncMock()
    tracker.run = AsyncMock(return_value=TrackerResult(success=True, output=""))
    return tracker


@pytest.fixture
def completion() -> AsyncMock:
    completion = AsyncMock()
    completion.complete = AsyncMock(side_effect=CompletionError("LLM unavailable"))
    return completion


@pytest.fixture
def deps(tracker: AsyncMock) -> HandlerDeps:
    return HandlerDeps(
        tracker=tracker,
        store=MemoryLinkedReferenceStore(),
        clock=lambda: datetime(2024, 1, 10, 9, 0),
    )


def make_workflow(deps: HandlerDeps, completion=None, handler_timeout: float = 5.0) -> AssistantWorkflow:
    return AssistantWorkflow(
        classifier=IntentClassifier(completion=completion),
        router=BranchRouter(build_handlers(deps)),
        handler_timeout=handler_timeout,
    )


@pytest.fixture
def ctx() -> ConversationContext:
    return ConversationContext(chat_id="oc_1", thread_root_id="om_root", user_id="ou_alice")


# =============================================================================
# Scenarios
# =============================================================================


class TestWorkflowScenarios:
    """Messages from a group chat, start to finish."""

    @pytest.mark.asyncio
    async def test_close_with_delivery_asks_for_confirmation(self, deps, ctx) -> None:
        output = await make_workflow(deps).run("/close 42 delivered dashboard at https://x/y", ctx)

        assert output.intent == Intent.CLOSE_ITEM
        assert output.needs_confirmation is True
        envelope = json.loads(output.confirmation_data)
        assert envelope["intent"] == "close_item"
        assert envelope["payload"]["issueId"] == "42"
        assert envelope["payload"]["deliveryUrl"] == "https://x/y"

    @pytest.mark.asyncio
    async def test_close_without_delivery_is_refused(self, deps, tracker, ctx) -> None:
        output = await make_workflow(deps).run("/close 42", ctx)

        assert output.intent == Intent.CLOSE_ITEM
        assert output.needs_confirmation is False
        assert "delivery URL is required" in output.response
        tracker.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_then_confirm(self, deps, tracker, ctx) -> None:
        workflow = make_workflow(deps)

        preview = await workflow.run("create issue: fix pipeline, priority 2, ddl next wednesday", ctx)

        assert preview.intent == Intent.CREATE_ITEM
        assert preview.needs_confirmation is True
        payload = json.loads(preview.confirmation_data)["payload"]
        assert payload["summary"] == "fix pipeline"
        assert payload["dueDate"] == "2024-01-17"
        assert "issue create -R dpa/dpa-mom/task" in payload["command"]
        assert "--due-date 2024-01-17" in payload["command"]
        tracker.run.assert_not_awaited()

        tracker.run.return_value = TrackerResult(
            success=True, output="https://git.example.com/dpa/dpa-mom/task/-/issues/88"
        )
        confirmed = await workflow.run("__gitlab_confirm__:" + preview.confirmation_data, ConversationContext())

        assert confirmed.intent == Intent.CREATE_ITEM
        assert confirmed.needs_confirmation is False
        assert "#88" in confirmed.response
        tracker.run.assert_awaited_once()
        assert deps.store.load("oc_1", "om_root").external_id == "88"

    @pytest.mark.asyncio
    async def test_cancel(self, deps, tracker) -> None:
        output = await make_workflow(deps).run("__gitlab_cancel__")

        assert output.intent == Intent.CREATE_ITEM
        assert "Cancelled" in output.response
        tracker.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_link_in_linked_thread(self, deps, tracker) -> None:
        deps.store = MagicMock()
        ctx = ConversationContext(
            chat_id="oc_1",
            thread_root_id="om_root",
            linked_reference=LinkedReference(chat_id="oc_1", root_id="om_root", external_id="77"),
        )

        output = await make_workflow(deps).run("link to #123", ctx)

        assert output.intent == Intent.LINK_EXISTING
        assert "already linked" in output.response
        deps.store.save.assert_not_called()
        tracker.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_llm_failure_skips(self, deps, completion, ctx) -> None:
        output = await make_workflow(deps, completion=completion).run("hmm, thoughts on the roadmap?", ctx)

        assert output.intent == Intent.GENERAL_CHAT
        assert output.skip is True
        assert output.response == ""
        completion.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_help_question_is_answered(self, deps, ctx) -> None:
        output = await make_workflow(deps).run("what can you do?", ctx)

        assert output.intent == Intent.GENERAL_CHAT
        assert output.skip is False
        assert "/create" in output.response

    @pytest.mark.asyncio
    async def test_empty_message_skips(self, deps) -> None:
        output = await make_workflow(deps).run("   ")

        assert output.skip is True


# =============================================================================
# Error Handling
# =============================================================================


class TestWorkflowErrors:
    """Failures inside handlers become replies, never exceptions."""

    @pytest.mark.asyncio
    async def test_handler_timeout(self, deps, tracker, ctx) -> None:
        async def slow(command: str) -> TrackerResult:
            await asyncio.sleep(5)
            return TrackerResult(success=True)

        tracker.run = slow

        output = await make_workflow(deps, handler_timeout=0.05).run("/list", ctx)

        assert output.intent == Intent.LIST_ITEMS
        assert output.response.startswith("⏱️")

    @pytest.mark.asyncio
    async def test_collaborator_error(self, deps, ctx) -> None:
        deps.documents = AsyncMock()
        deps.documents.read = AsyncMock(side_effect=CollaboratorError("Feishu error 99991663: token invalid"))

        output = await make_workflow(deps).run("/doc https://example.feishu.cn/docx/abc", ctx)

        assert output.response == "❌ Error: Feishu error 99991663: token invalid"

    @pytest.mark.asyncio
    async def test_missing_configuration(self, ctx) -> None:
        output = await make_workflow(HandlerDeps()).run("/list", ctx)

        assert output.response == "❌ Not configured: No issue tracker is configured"

    @pytest.mark.asyncio
    async def test_unexpected_error(self, deps, tracker, ctx) -> None:
        tracker.run = AsyncMock(side_effect=RuntimeError("boom"))

        output = await make_workflow(deps).run("/list", ctx)

        assert output.response == "❌ Unexpected error: boom"

    @pytest.mark.asyncio
    async def test_classifier_crash_skips(self, deps) -> None:
        workflow = make_workflow(deps)
        workflow.classifier = MagicMock()
        workflow.classifier.classify = AsyncMock(side_effect=RuntimeError("bug"))

        output = await workflow.run("/list")

        assert output.skip is True
        assert output.intent == Intent.GENERAL_CHAT


# =============================================================================
# Factory
# =============================================================================


class TestCreateWorkflow:
    """Tests for building a workflow from configuration."""

    def test_builds_from_config(self, tmp_path: Path, tracker: AsyncMock) -> None:
        config = AppConfig(project_path=tmp_path, handler_timeout=12)

        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker)

        assert workflow.handler_timeout == 12
        handler = workflow.router.handlers[Intent.LINK_EXISTING]
        assert isinstance(handler.deps.store, JsonLinkedReferenceStore)
        assert handler.deps.store.path == tmp_path / ".chatdesk" / "links.json"
        assert handler.deps.tracker is tracker
        assert handler.deps.history is None

    @pytest.mark.asyncio
    async def test_aclose_closes_completion(self, tmp_path: Path, tracker: AsyncMock) -> None:
        completion = AsyncMock()
        workflow = create_workflow(AppConfig(project_path=tmp_path), completion=completion, tracker=tracker)

        await workflow.aclose()

        completion.aclose.assert_awaited_once()

    def test_feishu_adapters_without_tasks(self, tmp_path: Path, tracker: AsyncMock) -> None:
        config = AppConfig(project_path=tmp_path, feishu_app_id="cli_x", feishu_app_secret="s")

        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker)

        deps = workflow.router.handlers[Intent.CREATE_ITEM].deps
        assert isinstance(deps.history, FeishuChatHistory)
        assert isinstance(deps.documents, FeishuDocReader)
        assert deps.tasks is None

    def test_feishu_tasks_enabled(self, tmp_path: Path, tracker: AsyncMock) -> None:
        config = AppConfig(project_path=tmp_path, feishu_app_id="cli_x", feishu_app_secret="s", feishu_tasks=True)

        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker)

        deps = workflow.router.handlers[Intent.CREATE_ITEM].deps
        assert isinstance(deps.tasks, FeishuTaskTracker)
        assert deps.tasks.client is deps.history.client

    def test_feishu_tasks_need_credentials(self, tmp_path: Path, tracker: AsyncMock) -> None:
        config = AppConfig(project_path=tmp_path, feishu_tasks=True)

        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker)

        assert workflow.router.handlers[Intent.CREATE_ITEM].deps.tasks is None

    def test_explicit_tasks_win(self, tmp_path: Path, tracker: AsyncMock) -> None:
        tasks = AsyncMock()
        config = AppConfig(project_path=tmp_path, feishu_app_id="cli_x", feishu_app_secret="s", feishu_tasks=True)

        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker, tasks=tasks)

        assert workflow.router.handlers[Intent.CREATE_ITEM].deps.tasks is tasks

    @pytest.mark.asyncio
    async def test_confirmed_create_mirrors_task(self, tmp_path: Path, tracker: AsyncMock) -> None:
        config = AppConfig(project_path=tmp_path, feishu_app_id="cli_x", feishu_app_secret="s", feishu_tasks=True)
        tracker.run = AsyncMock(
            return_value=TrackerResult(success=True, output="https://git.example.com/dpa/dpa-mom/task/-/issues/5\n")
        )
        workflow = create_workflow(config, completion=AsyncMock(), tracker=tracker)
        tasks = workflow.router.handlers[Intent.CREATE_ITEM].deps.tasks
        tasks.create_task = AsyncMock(return_value=TrackerResult(success=True, output="g-1"))
        ctx = ConversationContext(chat_id="oc_1", thread_root_id="om_1", user_id="ou_a")

        preview = await workflow.run("/create fix login, ddl 2024-02-01", ctx)
        await workflow.run(f"__gitlab_confirm__:{preview.confirmation_data}", ctx)

        tasks.create_task.assert_awaited_once_with("fix login", "2024-02-01", [])
