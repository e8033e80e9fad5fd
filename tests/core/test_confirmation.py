"""Tests for chatdesk.core.confirmation.

Tests cover:
- Envelope serialization
- Token decoding (confirm, cancel, corrupt, not a token)
- Legacy bare payloads
- Rejection of malformed envelopes
"""

from __future__ import annotations

import json

import pytest

from chatdesk.core.confirmation import (
    CANCEL_PREFIX,
    CONFIRM_PREFIX,
    ConfirmationCodec,
    PendingAction,
    TokenKind,
    decode,
    encode,
)
from chatdesk.core.errors import ConfirmationPayloadError
from chatdesk.core.intent.taxonomy import Intent

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def codec() -> ConfirmationCodec:
    return ConfirmationCodec()


@pytest.fixture
def create_action() -> PendingAction:
    return PendingAction(
        action_kind="create_issue",
        intent=Intent.CREATE_ITEM,
        payload={"summary": "修复看板", "project": "dpa/dpa-mom/task"},
    )


# =============================================================================
# Envelope Tests
# =============================================================================


class TestPendingAction:
    """Tests for the wire envelope."""

    def test_to_dict(self, create_action: PendingAction) -> None:
        assert create_action.to_dict() == {
            "v": 1,
            "intent": "create_item",
            "action": "create_issue",
            "payload": {"summary": "修复看板", "project": "dpa/dpa-mom/task"},
        }

    def test_from_dict(self) -> None:
        action = PendingAction.from_dict(
            {"v": 1, "intent": "close_item", "action": "close_issue", "payload": {"issueId": "4"}}
        )

        assert action.intent == Intent.CLOSE_ITEM
        assert action.action_kind == "close_issue"
        assert action.payload == {"issueId": "4"}

    def test_legacy_payload_key(self) -> None:
        action = PendingAction.from_dict({"payload": {"summary": "x"}})

        assert action.intent == Intent.CREATE_ITEM
        assert action.action_kind == "create_issue"
        assert action.payload == {"summary": "x"}

    def test_legacy_data_key(self) -> None:
        action = PendingAction.from_dict({"data": {"summary": "x"}})

        assert action.payload == {"summary": "x"}

    def test_legacy_flat(self) -> None:
        action = PendingAction.from_dict({"summary": "x", "glabCommand": "issue create -t x"})

        assert action.intent == Intent.CREATE_ITEM
        assert action.payload["glabCommand"] == "issue create -t x"

    def test_rejects_non_confirmable_intent(self) -> None:
        with pytest.raises(ConfirmationPayloadError, match="Unsupported intent"):
            PendingAction.from_dict({"v": 1, "intent": "list_items", "action": "x", "payload": {}})

    def test_rejects_unknown_intent(self) -> None:
        with pytest.raises(ConfirmationPayloadError):
            PendingAction.from_dict({"v": 1, "intent": "drop_tables", "action": "x", "payload": {}})

    def test_rejects_missing_action(self) -> None:
        with pytest.raises(ConfirmationPayloadError, match="action"):
            PendingAction.from_dict({"v": 1, "intent": "create_item", "payload": {}})

    def test_rejects_non_object_payload(self) -> None:
        with pytest.raises(ConfirmationPayloadError, match="not an object"):
            PendingAction.from_dict({"v": 1, "intent": "create_item", "action": "create_issue", "payload": [1]})

    def test_rejects_future_version(self) -> None:
        with pytest.raises(ConfirmationPayloadError, match="version"):
            PendingAction.from_dict({"v": 2, "intent": "create_item", "action": "create_issue", "payload": {}})


# =============================================================================
# Codec Tests
# =============================================================================


class TestCodec:
    """Tests for encoding and decoding tokens."""

    def test_encode_format(self, codec: ConfirmationCodec, create_action: PendingAction) -> None:
        token = codec.encode(create_action)

        assert token.startswith(f"{CONFIRM_PREFIX}:")
        assert "修复看板" in token
        assert json.loads(token[len(CONFIRM_PREFIX) + 1 :])["action"] == "create_issue"

    def test_decode_confirm(self, codec: ConfirmationCodec, create_action: PendingAction) -> None:
        token = codec.decode(codec.encode(create_action))

        assert token is not None
        assert token.kind == TokenKind.CONFIRM
        assert token.pending == create_action
        assert token.intent == Intent.CREATE_ITEM
        assert not token.is_corrupt

    def test_decode_cancel(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(codec.encode_cancel())

        assert token is not None
        assert token.kind == TokenKind.CANCEL
        assert token.is_cancel
        assert token.intent == Intent.CREATE_ITEM

    def test_cancel_with_trailing_text(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(f"{CANCEL_PREFIX}:anything")

        assert token is not None
        assert token.is_cancel

    def test_decode_not_a_token(self, codec: ConfirmationCodec) -> None:
        assert codec.decode("hello") is None
        assert codec.decode(f" {CONFIRM_PREFIX}:{{}}") is None

    def test_decode_corrupt_json(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(f"{CONFIRM_PREFIX}:{{not json")

        assert token is not None
        assert token.is_corrupt
        assert "Invalid confirmation JSON" in token.error
        assert token.intent == Intent.CREATE_ITEM

    def test_decode_missing_separator(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(CONFIRM_PREFIX)

        assert token is not None
        assert token.is_corrupt
        assert token.error == "Missing payload separator"

    def test_decode_empty_payload(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(f"{CONFIRM_PREFIX}:")

        assert token is not None
        assert token.is_corrupt

    def test_decode_non_object(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(f"{CONFIRM_PREFIX}:[1, 2]")

        assert token is not None
        assert token.is_corrupt

    def test_decode_legacy(self, codec: ConfirmationCodec) -> None:
        token = codec.decode(f'{CONFIRM_PREFIX}:{{"summary": "fix", "project": "dpa/x"}}')

        assert token is not None
        assert token.pending.action_kind == "create_issue"
        assert token.pending.payload["summary"] == "fix"

    def test_is_token(self, codec: ConfirmationCodec) -> None:
        assert codec.is_token(CANCEL_PREFIX)
        assert codec.is_token(f"{CONFIRM_PREFIX}:{{}}")
        assert not codec.is_token("confirm")

    def test_custom_prefixes(self, create_action: PendingAction) -> None:
        codec = ConfirmationCodec(confirm_prefix="__ok__", cancel_prefix="__no__")

        assert codec.decode(codec.encode(create_action)).pending == create_action
        assert codec.decode("__no__").is_cancel
        assert codec.decode(f"{CONFIRM_PREFIX}:{{}}") is None

    def test_module_helpers(self, create_action: PendingAction) -> None:
        assert decode(encode(create_action)).pending == create_action
