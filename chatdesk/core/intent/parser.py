"""Intent classification orchestrator for chatdesk.

This module implements the five-stage classification cascade:
1. Confirmation tokens - button replays, exact prefix on the raw text
2. Command table - explicit /command dispatch
3. Context rules - only when the thread is linked to an issue
4. Relational and keyword rules - regex, linkage independent
5. LLM classification - for everything else

Each stage short-circuits. The classifier never raises: any failure in the
LLM stage degrades to general chat, which the router turns into a skip.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING

from ..confirmation import ConfirmationCodec
from .commands import parse_command
from .entities import DEFAULT_DOC_HOST_PATTERN, extract_doc_url, extract_issue_number, extract_mentions
from .patterns import IntentPatternMatcher, PatternMatch
from .taxonomy import (
    ISSUE_REFERENCE_INTENTS,
    ClassificationResult,
    ConversationContext,
    Intent,
)

if TYPE_CHECKING:
    from ..backends.base import TextCompletion

logger = logging.getLogger(__name__)

# Maximum input length passed to regexes and the LLM
MAX_INPUT_LENGTH = 10_000

DEFAULT_LLM_TIMEOUT = 15.0


LLM_INTENT_PROMPT = """\
You are the intent classifier of a team assistant in a group chat. The team \
tracks work as GitLab issues and merge requests.

Classify the user message into exactly one intent:
- create_item: create a new issue, bug or ticket
- list_items: list issues or merge requests
- close_item: close an issue, usually with a delivery link
- assign_self: assign an issue to the sender
- link_existing: link this thread to an existing issue
- summarize_item: summarize an issue and its discussion
- search_history: search or recall recent chat messages
- read_document: read or explain a document
- update_linked_item: add information to the issue linked to this thread
- collect_feedback: summarize feedback from chat members
- review_changes: review merge requests
- help: asks how to use the assistant
- general_chat: anything else

Thread linked to an issue: {linked}

USER MESSAGE: "{message}"

Answer with the intent name only."""


_LLM_NORMALIZE = re.compile(r"[^a-z_]")


def normalize_llm_intent(response: str) -> Intent:
    """Map a raw LLM answer onto the intent vocabulary.

    The answer is lowercased and stripped of everything but letters and
    underscores; anything that is not an exact intent name is general chat.
    """
    cleaned = _LLM_NORMALIZE.sub("", response.lower())
    return Intent.from_value(cleaned) or Intent.GENERAL_CHAT


class IntentClassifier:
    """Classifies chat messages into intents.

    Attributes:
        completion: Optional text-completion client for stage 5
        llm_timeout: Seconds allowed for the LLM call
        doc_host_pattern: Regex identifying document URLs
        pattern_matcher: Regex rule families for stages 3-4
        codec: Confirmation token codec for stage 1
    """

    def __init__(
        self,
        completion: "TextCompletion | None" = None,
        llm_timeout: float = DEFAULT_LLM_TIMEOUT,
        doc_host_pattern: str = DEFAULT_DOC_HOST_PATTERN,
        codec: ConfirmationCodec | None = None,
    ) -> None:
        self.completion = completion
        self.llm_timeout = llm_timeout
        self.doc_host_pattern = doc_host_pattern
        self.pattern_matcher = IntentPatternMatcher()
        self.codec = codec or ConfirmationCodec()

    async def classify(
        self,
        raw_query: str,
        ctx: ConversationContext | None = None,
    ) -> ClassificationResult:
        """Classify a message through the full cascade.

        Args:
            raw_query: Message text exactly as received
            ctx: Conversation context (linked reference etc.)

        Returns:
            ClassificationResult; general chat if nothing could be resolved
        """
        ctx = ctx or ConversationContext()

        result = self.classify_deterministic(raw_query, ctx)
        if result is not None:
            return result

        text = self._prepare(raw_query)
        result = await self._classify_llm(raw_query, text, ctx)
        self._enrich(result, ctx)
        logger.info(f"Classified via {result.source}: {result.intent.value}")
        return result

    def classify_deterministic(
        self,
        raw_query: str,
        ctx: ConversationContext | None = None,
    ) -> ClassificationResult | None:
        """Run stages 1-4 only.

        Args:
            raw_query: Message text exactly as received
            ctx: Conversation context

        Returns:
            ClassificationResult, or None if the LLM stage is needed
        """
        ctx = ctx or ConversationContext()

        # Stage 1: confirmation tokens, exact prefix on the raw text
        token = self.codec.decode(raw_query)
        if token is not None:
            if token.error:
                logger.warning(f"Corrupt confirmation token: {token.error}")
            return ClassificationResult(
                intent=token.intent,
                raw_query=raw_query,
                source="confirmation",
                confirmation=token,
            )

        text = self._prepare(raw_query)
        if not text:
            return ClassificationResult.chat_fallback(raw_query)

        # Stage 2: command table
        command = parse_command(text)
        if command is not None:
            if not command.recognized:
                logger.info(f"Unknown command {command.command}, deferring to LLM")
                return None
            result = ClassificationResult(
                intent=command.intent,
                params=dict(command.params),
                raw_query=raw_query,
                text=command.remaining,
                source="command",
                matched_pattern=command.command,
            )
            self._enrich(result, ctx)
            logger.info(f"Classified via command {command.command}: {result.intent.value}")
            return result

        # Stage 3: context rules, only inside a linked thread
        if ctx.linked_reference is not None:
            match = self.pattern_matcher.match_context(text)
            if match is not None:
                match.params.setdefault("issueId", ctx.linked_reference.external_id)
                return self._from_match(match, raw_query, text, "context", ctx)

        # Stage 4: relational rules, then keyword families
        match = self.pattern_matcher.match_relational(text) or self.pattern_matcher.match_keywords(text)
        if match is not None:
            return self._from_match(match, raw_query, text, "pattern", ctx)

        return None

    def _prepare(self, raw_query: str) -> str:
        text = raw_query.strip()
        if len(text) > MAX_INPUT_LENGTH:
            logger.warning(f"Input truncated from {len(text)} to {MAX_INPUT_LENGTH} chars")
            text = text[:MAX_INPUT_LENGTH]
        return text

    def _from_match(
        self,
        match: PatternMatch,
        raw_query: str,
        text: str,
        source: str,
        ctx: ConversationContext,
    ) -> ClassificationResult:
        result = ClassificationResult(
            intent=match.intent,
            params=dict(match.params),
            raw_query=raw_query,
            text=text,
            source=source,
            matched_pattern=match.matched_patterns[0] if match.matched_patterns else None,
        )
        self._enrich(result, ctx)
        logger.info(f"Classified via {source} rules: {result.intent.value}")
        return result

    async def _classify_llm(
        self,
        raw_query: str,
        text: str,
        ctx: ConversationContext,
    ) -> ClassificationResult:
        """Stage 5: one temperature-zero completion.

        Args:
            raw_query: Original input
            text: Trimmed, truncated input
            ctx: Conversation context

        Returns:
            ClassificationResult with source "llm", or a general-chat
            fallback if the LLM is missing or fails
        """
        if self.completion is None:
            return ClassificationResult.chat_fallback(raw_query)

        linked = "no"
        if ctx.linked_reference is not None:
            linked = f"yes (#{ctx.linked_reference.external_id})"

        prompt = LLM_INTENT_PROMPT.format(linked=linked, message=text)

        try:
            completion = await asyncio.wait_for(
                self.completion.complete(prompt, temperature=0.0, max_tokens=20),
                timeout=self.llm_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"LLM classification timed out after {self.llm_timeout}s")
            return ClassificationResult.chat_fallback(raw_query)
        except Exception as e:
            logger.warning(f"LLM classification failed: {e}")
            return ClassificationResult.chat_fallback(raw_query)

        intent = normalize_llm_intent(completion.text)
        return ClassificationResult(
            intent=intent,
            raw_query=raw_query,
            text=text,
            source="llm",
            matched_pattern=completion.text.strip()[:50] or None,
        )

    def _enrich(self, result: ClassificationResult, ctx: ConversationContext) -> None:
        """Add shared parameters extracted from the text.

        Args:
            result: Result to update in place
            ctx: Conversation context
        """
        text = result.text

        doc_url = extract_doc_url(text, self.doc_host_pattern)
        if doc_url:
            result.params.setdefault("docUrl", doc_url)

        if result.intent == Intent.COLLECT_FEEDBACK:
            mentions = extract_mentions(text)
            if mentions:
                result.params.setdefault("targetUsers", ",".join(mentions))

        if result.intent in ISSUE_REFERENCE_INTENTS and "issueId" not in result.params:
            issue_id = extract_issue_number(text)
            if issue_id:
                result.params["issueId"] = issue_id


def create_classifier(
    completion: "TextCompletion | None" = None,
    llm_timeout: float = DEFAULT_LLM_TIMEOUT,
    doc_host_pattern: str = DEFAULT_DOC_HOST_PATTERN,
) -> IntentClassifier:
    """Factory function to create an IntentClassifier.

    Args:
        completion: Optional text-completion client for LLM classification
        llm_timeout: Seconds allowed for the LLM call
        doc_host_pattern: Regex identifying document URLs

    Returns:
        Configured IntentClassifier instance
    """
    return IntentClassifier(
        completion=completion,
        llm_timeout=llm_timeout,
        doc_host_pattern=doc_host_pattern,
    )
