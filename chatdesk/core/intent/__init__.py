"""Intent classification for chatdesk.

Turns a chat message into an Intent plus string parameters. The cascade:
1. Confirmation tokens - button replays
2. Command table - explicit /command dispatch
3. Context rules - only inside a thread linked to an issue
4. Relational and keyword rules - regex classification
5. LLM classification - for everything else

Example usage:
    ```python
    from chatdesk.core.intent import IntentClassifier, Intent

    classifier = IntentClassifier()

    # Deterministic stages only
    result = classifier.classify_deterministic("/close #42 https://superset.example.com/d/1")
    assert result.intent == Intent.CLOSE_ITEM
    assert result.params["issueId"] == "42"

    # Full cascade with LLM fallback
    result = await classifier.classify("hmm, what about the pipeline?", ctx)
    ```
"""

from .taxonomy import (
    CONFIRMABLE_INTENTS,
    ISSUE_REFERENCE_INTENTS,
    ClassificationResult,
    ConversationContext,
    Intent,
    LinkedReference,
    thread_key,
)
from .entities import (
    DEFAULT_DOC_HOST_PATTERN,
    ExtractedEntities,
    extract_doc_url,
    extract_due_date,
    extract_entities,
    extract_issue_number,
    extract_labels,
    extract_mentions,
    extract_priority,
    extract_project,
    extract_urls,
    resolve_relative_date,
)
from .commands import (
    COMMAND_SPECS,
    HELP_COMMANDS,
    SLASH_COMMANDS,
    CommandMatch,
    format_command_help,
    parse_command,
)
from .patterns import (
    IntentPatternMatcher,
    PatternMatch,
)
from .parser import (
    MAX_INPUT_LENGTH,
    IntentClassifier,
    create_classifier,
    normalize_llm_intent,
)

__all__ = [
    # Classifier
    "IntentClassifier",
    "create_classifier",
    "normalize_llm_intent",
    "MAX_INPUT_LENGTH",
    # Pattern matching
    "IntentPatternMatcher",
    "PatternMatch",
    # Commands
    "COMMAND_SPECS",
    "HELP_COMMANDS",
    "SLASH_COMMANDS",
    "CommandMatch",
    "format_command_help",
    "parse_command",
    # Taxonomy
    "Intent",
    "CONFIRMABLE_INTENTS",
    "ISSUE_REFERENCE_INTENTS",
    "ClassificationResult",
    "ConversationContext",
    "LinkedReference",
    "thread_key",
    # Entity extraction
    "DEFAULT_DOC_HOST_PATTERN",
    "ExtractedEntities",
    "extract_doc_url",
    "extract_due_date",
    "extract_entities",
    "extract_issue_number",
    "extract_labels",
    "extract_mentions",
    "extract_priority",
    "extract_project",
    "extract_urls",
    "resolve_relative_date",
]
