"""Document reading handler."""

from __future__ import annotations

from ..formatter import HandlerOutcome, Reply
from ..intent.entities import extract_urls
from ..intent.taxonomy import ClassificationResult, ConversationContext, Intent
from .base import Handler, truncate

MAX_DOCUMENT_CHARS = 2000


class ReadDocumentHandler(Handler):
    intent = Intent.READ_DOCUMENT

    async def handle(self, result: ClassificationResult, ctx: ConversationContext) -> HandlerOutcome:
        urls = extract_urls(result.text)
        doc_url = result.params.get("docUrl") or (urls[0] if urls else None)
        if not doc_url:
            return Reply("❓ No document link found. Please share a Feishu/Lark document link.")
        if self.deps.documents is None:
            return Reply("❌ Document reading is not configured.")

        document = await self.deps.documents.read(doc_url)
        content = document.content or "(the document is empty)"
        content = truncate(content, MAX_DOCUMENT_CHARS, "...\n\n(truncated)")
        return Reply(f"## 📄 {document.title or 'Untitled'}\n\n{content}")


__all__ = ["ReadDocumentHandler"]
