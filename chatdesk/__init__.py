"""
chatdesk - Group-chat assistant for a data team

A chat-driven assistant with:
- Layered intent classification (tokens, commands, keyword rules, LLM fallback)
- Thread-to-issue linkage carried in from an external store
- Two-phase confirmation for state-changing actions via replayable tokens
- Thin adapters for GitLab (glab), Feishu chat history and documents
"""

__version__ = "0.3.0"
__author__ = "chatdesk"

from .config import AppConfig, UserMapping
from .core.workflow import AssistantWorkflow, create_workflow

__all__ = [
    "AppConfig",
    "UserMapping",
    "AssistantWorkflow",
    "create_workflow",
]
