"""Linked-reference stores for chatdesk.

A linked reference binds a chat thread to an issue. One binding per
thread, keyed by "chat_id:root_id"; saving again replaces it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..intent.taxonomy import LinkedReference, thread_key
from .base import LinkedReferenceStore

logger = logging.getLogger(__name__)


class MemoryLinkedReferenceStore(LinkedReferenceStore):
    """In-process store, for tests and one-off CLI runs."""

    def __init__(self) -> None:
        self._refs: dict[str, LinkedReference] = {}

    def load(self, chat_id: str, root_id: str) -> LinkedReference | None:
        return self._refs.get(thread_key(chat_id, root_id))

    def save(self, ref: LinkedReference) -> bool:
        self._refs[ref.thread_key] = ref
        return True

    def __len__(self) -> int:
        return len(self._refs)


class JsonLinkedReferenceStore(LinkedReferenceStore):
    """Store backed by one JSON file.

    The file is re-read on every call so several processes can share it;
    writes go through a temp file and an atomic replace.

    Attributes:
        path: JSON file holding {thread key: reference}
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {self.path}")
        return data

    def load(self, chat_id: str, root_id: str) -> LinkedReference | None:
        """Load the binding for a thread, or None if absent or unreadable."""
        if not chat_id or not root_id:
            return None
        try:
            raw = self._read_all().get(thread_key(chat_id, root_id))
            return LinkedReference.from_dict(raw) if raw else None
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to read linked references from {self.path}: {e}")
            return None

    def save(self, ref: LinkedReference) -> bool:
        """Insert or replace the binding for ref's thread."""
        try:
            refs = self._read_all()
        except (OSError, ValueError) as e:
            logger.warning(f"Linked reference file {self.path} unreadable, not overwriting: {e}")
            return False

        refs[ref.thread_key] = ref.to_dict()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.path.with_suffix(".json.tmp")
            temp_file.write_text(json.dumps(refs, indent=2, ensure_ascii=False), encoding="utf-8")
            temp_file.replace(self.path)
        except OSError as e:
            logger.warning(f"Failed to save linked reference {ref.thread_key}: {e}")
            return False

        logger.info(f"Saved linked reference {ref.thread_key} -> #{ref.external_id}")
        return True

    def all(self) -> list[LinkedReference]:
        """Every stored binding."""
        try:
            return [LinkedReference.from_dict(raw) for raw in self._read_all().values()]
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to read linked references from {self.path}: {e}")
            return []


__all__ = ["JsonLinkedReferenceStore", "MemoryLinkedReferenceStore"]
