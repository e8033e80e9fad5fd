"""Confirmation tokens for chatdesk's two-phase actions.

A handler that needs a human to approve a state-changing action returns a
PendingAction instead of acting. The pending action travels to the chat UI
as an opaque token and comes back, verbatim, as the text of a brand-new
message when the user clicks a button:

    confirm:  __gitlab_confirm__:{"v": 1, "intent": "create_item", "action": "create_issue", "payload": {...}}
    cancel:   __gitlab_cancel__

The JSON part is a versioned envelope. Bare payloads without an envelope
(the format older buttons carry) decode as an issue-creation action.

Tokens are not signed: anyone able to post the exact token text can trigger
the action.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ConfirmationPayloadError
from .intent.taxonomy import CONFIRMABLE_INTENTS, Intent

logger = logging.getLogger(__name__)

CONFIRM_PREFIX = "__gitlab_confirm__"
CANCEL_PREFIX = "__gitlab_cancel__"
TOKEN_VERSION = 1

# Action kind assumed for payloads that predate the envelope
LEGACY_ACTION_KIND = "create_issue"


class TokenKind(str, Enum):
    """Kind of confirmation token."""

    CONFIRM = "confirm"
    CANCEL = "cancel"


@dataclass
class PendingAction:
    """An action awaiting human confirmation.

    Must be self-contained: replaying it needs nothing but its own payload
    and a fresh ConversationContext.

    Attributes:
        action_kind: What the handler will do on confirm (e.g. "create_issue")
        intent: Intent of the handler that produced it; replay routes here
        payload: JSON-serializable data the effect needs
        version: Envelope version
    """

    action_kind: str
    intent: Intent
    payload: dict[str, Any] = field(default_factory=dict)
    version: int = TOKEN_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire envelope."""
        return {
            "v": self.version,
            "intent": self.intent.value,
            "action": self.action_kind,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingAction":
        """Deserialize from a wire envelope or a legacy bare payload.

        Raises:
            ConfirmationPayloadError: If the envelope is malformed or names an
                intent that does not take confirmations
        """
        if "v" not in data and "action" not in data:
            payload = data.get("payload") or data.get("data") or data
            if not isinstance(payload, dict):
                raise ConfirmationPayloadError("Legacy payload is not an object")
            return cls(action_kind=LEGACY_ACTION_KIND, intent=Intent.CREATE_ITEM, payload=payload)

        intent = Intent.from_value(str(data.get("intent", "")))
        if intent is None or intent not in CONFIRMABLE_INTENTS:
            raise ConfirmationPayloadError(f"Unsupported intent in token: {data.get('intent')!r}")

        action_kind = data.get("action")
        if not isinstance(action_kind, str) or not action_kind:
            raise ConfirmationPayloadError("Token is missing an action kind")

        payload = data.get("payload", {})
        if not isinstance(payload, dict):
            raise ConfirmationPayloadError("Token payload is not an object")

        try:
            version = int(data.get("v", TOKEN_VERSION))
        except (TypeError, ValueError) as e:
            raise ConfirmationPayloadError(f"Invalid token version: {data.get('v')!r}") from e
        if version > TOKEN_VERSION:
            raise ConfirmationPayloadError(f"Unsupported token version: {version}")

        return cls(action_kind=action_kind, intent=intent, payload=payload, version=version)


@dataclass(frozen=True)
class ConfirmationToken:
    """A decoded confirmation token.

    Attributes:
        kind: Confirm or cancel
        pending: The pending action (None for cancel, or if decoding failed)
        error: Why decoding failed, if it did
    """

    kind: TokenKind
    pending: PendingAction | None = None
    error: str | None = None

    @property
    def is_cancel(self) -> bool:
        return self.kind == TokenKind.CANCEL

    @property
    def is_corrupt(self) -> bool:
        return self.kind == TokenKind.CONFIRM and self.pending is None

    @property
    def intent(self) -> Intent:
        """Intent the token routes to. Cancel and corrupt tokens route to issue creation."""
        if self.pending is not None:
            return self.pending.intent
        return Intent.CREATE_ITEM


class ConfirmationCodec:
    """Encodes and decodes confirmation tokens.

    Example:
        codec = ConfirmationCodec()
        token = codec.encode(PendingAction("create_issue", Intent.CREATE_ITEM, {...}))
        decoded = codec.decode(token)
        assert decoded.pending.payload == {...}
    """

    def __init__(
        self,
        confirm_prefix: str = CONFIRM_PREFIX,
        cancel_prefix: str = CANCEL_PREFIX,
    ) -> None:
        self.confirm_prefix = confirm_prefix
        self.cancel_prefix = cancel_prefix

    def dumps(self, pending: PendingAction) -> str:
        """Serialize the pending action to its JSON envelope (no prefix)."""
        return json.dumps(pending.to_dict(), ensure_ascii=False)

    def loads(self, data: str) -> PendingAction:
        """Parse a JSON envelope (no prefix).

        Raises:
            ConfirmationPayloadError: If the data is not a valid envelope
        """
        if not data or not data.strip():
            raise ConfirmationPayloadError("Empty confirmation payload")
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            raise ConfirmationPayloadError(f"Invalid confirmation JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ConfirmationPayloadError("Confirmation payload is not an object")
        return PendingAction.from_dict(parsed)

    def encode(self, pending: PendingAction) -> str:
        """Build the full confirm token: prefix, colon, JSON envelope."""
        return f"{self.confirm_prefix}:{self.dumps(pending)}"

    def encode_cancel(self) -> str:
        """Build the cancel token."""
        return self.cancel_prefix

    def is_token(self, text: str) -> bool:
        """Check whether text starts with either reserved prefix (exact, no trimming)."""
        return text.startswith(self.confirm_prefix) or text.startswith(self.cancel_prefix)

    def decode(self, text: str) -> ConfirmationToken | None:
        """Decode a message into a token.

        Never raises. A message with the confirm prefix but an unreadable
        payload decodes to a CONFIRM token with pending=None and error set.

        Args:
            text: Message text exactly as received

        Returns:
            ConfirmationToken, or None if the text is not a token
        """
        if text.startswith(self.cancel_prefix):
            return ConfirmationToken(kind=TokenKind.CANCEL)

        if not text.startswith(self.confirm_prefix):
            return None

        rest = text[len(self.confirm_prefix) :]
        if not rest.startswith(":"):
            return ConfirmationToken(kind=TokenKind.CONFIRM, error="Missing payload separator")

        try:
            pending = self.loads(rest[1:])
        except ConfirmationPayloadError as e:
            logger.warning(f"Failed to decode confirmation payload: {e}")
            return ConfirmationToken(kind=TokenKind.CONFIRM, error=str(e))

        return ConfirmationToken(kind=TokenKind.CONFIRM, pending=pending)


# Module-level instance for convenience
_codec = ConfirmationCodec()


def encode(pending: PendingAction) -> str:
    """Encode a pending action into a confirm token using the default codec."""
    return _codec.encode(pending)


def decode(text: str) -> ConfirmationToken | None:
    """Decode a message into a token using the default codec."""
    return _codec.decode(text)


__all__ = [
    "CANCEL_PREFIX",
    "CONFIRM_PREFIX",
    "TOKEN_VERSION",
    "ConfirmationCodec",
    "ConfirmationToken",
    "PendingAction",
    "TokenKind",
    "decode",
    "encode",
]
