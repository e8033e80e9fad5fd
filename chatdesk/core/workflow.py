"""The chatdesk assistant workflow.

One invocation runs strictly top to bottom: classify the message, route it
to one handler, run the handler under a timeout and format the outcome.
Nothing is kept between invocations; continuity comes only from the
confirmation token and the caller-supplied linked reference.

AssistantWorkflow.run never raises.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .confirmation import ConfirmationCodec
from .errors import ChatdeskError, CollaboratorError, ConfigError
from .formatter import HandlerOutcome, Reply, Skip, WorkflowOutput, format_output
from .handlers import HandlerDeps, build_handlers
from .intent.parser import IntentClassifier
from .intent.taxonomy import ClassificationResult, ConversationContext, Intent
from .router import BranchRouter

if TYPE_CHECKING:
    from ..config import AppConfig
    from .backends.feishu import FeishuClient
    from .backends.base import (
        ChatHistory,
        DocumentReader,
        IssueTracker,
        LinkedReferenceStore,
        TaskTracker,
        TextCompletion,
    )

logger = logging.getLogger(__name__)

DEFAULT_HANDLER_TIMEOUT = 60.0


class AssistantWorkflow:
    """Classifier, router and handlers wired into one pipeline.

    Example:
        workflow = create_workflow(AppConfig.load(Path.cwd()))
        output = await workflow.run("/list my mr", ConversationContext(chat_id="oc_1"))
        if output.skip:
            ...  # hand over to the conversational agent

    Attributes:
        classifier: Intent classifier
        router: Intent to handler router
        handler_timeout: Seconds allowed per handler
        codec: Codec used to serialize pending actions
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        router: BranchRouter,
        handler_timeout: float = DEFAULT_HANDLER_TIMEOUT,
        codec: ConfirmationCodec | None = None,
        closeables: "list[TextCompletion | FeishuClient] | None" = None,
    ) -> None:
        self.classifier = classifier
        self.router = router
        self.handler_timeout = handler_timeout
        self.codec = codec or classifier.codec
        self._closeables = list(closeables or [])

    async def run(self, query: str, ctx: ConversationContext | None = None) -> WorkflowOutput:
        """Process one chat message.

        Args:
            query: Message text exactly as received
            ctx: Conversation context; a fresh empty one if omitted

        Returns:
            WorkflowOutput with exactly one of answer, confirmation or skip
        """
        ctx = ctx or ConversationContext()

        try:
            result = await self.classifier.classify(query, ctx)
        except Exception:
            logger.exception("Classification failed unexpectedly")
            return WorkflowOutput(response="", intent=Intent.GENERAL_CHAT, skip=True)

        try:
            outcome = await self._dispatch(result, ctx)
            return format_output(outcome, result.intent, self.codec)
        except Exception:
            logger.exception(f"Failed to finish {result.intent.value}")
            return WorkflowOutput(
                response="❌ Something went wrong while handling your request. Please try again.",
                intent=result.intent,
            )

    async def _dispatch(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        handler = self.router.route(result)
        if handler is None:
            return Skip(reason=f"no handler for {result.intent.value}")

        name = type(handler).__name__
        logger.info(f"Routing {result.intent.value} ({result.source}) to {name}")

        try:
            return await asyncio.wait_for(handler.handle(result, ctx), timeout=self.handler_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{name} timed out after {self.handler_timeout}s")
            return Reply(f"⏱️ That took too long (over {self.handler_timeout:.0f}s). Please try again.")
        except ConfigError as e:
            logger.warning(f"{name} is missing configuration: {e}")
            return Reply(f"❌ Not configured: {e}")
        except CollaboratorError as e:
            logger.warning(f"{name} collaborator failed: {e}")
            return Reply(f"❌ Error: {e}")
        except ChatdeskError as e:
            logger.warning(f"{name} failed: {e}")
            return Reply(f"❌ Error: {e}")
        except Exception as e:
            logger.exception(f"{name} raised unexpectedly")
            return Reply(f"❌ Unexpected error: {e}")

    async def aclose(self) -> None:
        """Close the HTTP clients the workflow owns."""
        for resource in self._closeables:
            await resource.aclose()


def create_workflow(
    config: "AppConfig",
    *,
    completion: "TextCompletion | None" = None,
    tracker: "IssueTracker | None" = None,
    history: "ChatHistory | None" = None,
    documents: "DocumentReader | None" = None,
    tasks: "TaskTracker | None" = None,
    store: "LinkedReferenceStore | None" = None,
) -> AssistantWorkflow:
    """Build a workflow from configuration.

    Collaborators passed explicitly are used as is; the rest are built from
    config. Feishu adapters are only built when app credentials are set.

    Args:
        config: Application configuration
        completion: Text completion client
        tracker: Issue tracker
        history: Chat history fetcher
        documents: Document reader
        tasks: Task tracker
        store: Linked-reference store

    Returns:
        Configured AssistantWorkflow
    """
    from .backends import create_completion
    from .backends.glab import GlabIssueTracker
    from .backends.store import JsonLinkedReferenceStore

    if completion is None:
        completion = create_completion(config)

    if tracker is None:
        tracker = GlabIssueTracker(
            glab_path=config.glab_path,
            allowed_projects=config.allowed_projects,
            default_project=config.default_project,
            gitlab_host=config.gitlab_host,
            timeout=config.glab_timeout,
        )

    closeables: list = [completion]
    wants_tasks = config.feishu_tasks and tasks is None
    if config.has_feishu() and (history is None or documents is None or wants_tasks):
        from .backends.feishu import FeishuChatHistory, FeishuClient, FeishuDocReader, FeishuTaskTracker

        client = FeishuClient(config.feishu_app_id, config.feishu_app_secret, config.feishu_endpoint)
        closeables.append(client)
        history = history or FeishuChatHistory(client)
        documents = documents or FeishuDocReader(client)
        if wants_tasks:
            tasks = FeishuTaskTracker(client)

    if store is None:
        store = JsonLinkedReferenceStore(config.links_file)

    deps = HandlerDeps(
        tracker=tracker,
        completion=completion,
        history=history,
        documents=documents,
        tasks=tasks,
        store=store,
        gitlab_group=config.gitlab_group,
        default_project=config.default_project,
        gitlab_host=config.gitlab_host,
        history_limit=config.history_limit,
        llm_timeout=config.llm_timeout,
        user_mapping=dict(config.user_mapping.users),
    )

    classifier = IntentClassifier(
        completion=completion,
        llm_timeout=config.llm_timeout,
        doc_host_pattern=config.doc_host_pattern,
    )
    return AssistantWorkflow(
        classifier=classifier,
        router=BranchRouter(build_handlers(deps)),
        handler_timeout=config.handler_timeout,
        closeables=closeables,
    )


__all__ = ["AssistantWorkflow", "create_workflow"]
