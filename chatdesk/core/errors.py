"""Exception hierarchy for chatdesk."""

from __future__ import annotations


class ChatdeskError(Exception):
    """Base exception for chatdesk errors."""

    pass


class CollaboratorError(ChatdeskError):
    """An external collaborator (CLI, HTTP API, store) failed."""

    pass


class CompletionError(CollaboratorError):
    """Error during text completion."""

    pass


class ConfirmationPayloadError(ChatdeskError):
    """A confirmation token payload could not be decoded."""

    pass


class ConfigError(ChatdeskError):
    """Required configuration is missing or invalid."""

    pass


__all__ = [
    "ChatdeskError",
    "CollaboratorError",
    "CompletionError",
    "ConfirmationPayloadError",
    "ConfigError",
]
