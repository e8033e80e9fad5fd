"""Feishu/Lark open-platform adapters for chatdesk.

Provides chat history, document reading and task creation over the Feishu
open API. All three share one FeishuClient, which caches the tenant access
token until shortly before it expires.

Feishu API documentation: https://open.feishu.cn/document/server-docs/api-call-guide/calling-process/overview
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import datetime, time as dt_time
from typing import Any

import httpx

from ..errors import CollaboratorError
from .base import ChatHistory, ChatMessage, Document, DocumentReader, TaskTracker, TrackerResult

logger = logging.getLogger(__name__)

# Refresh the tenant token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 60

# Feishu caps message pages at 50
MAX_PAGE_SIZE = 50

_DOC_URL = re.compile(r"/(docx|docs|wiki)/([A-Za-z0-9]+)")


class FeishuClient:
    """Authenticated Feishu open-API client.

    Attributes:
        app_id: Feishu app id
        endpoint: API base URL (https://open.feishu.cn or https://open.larksuite.com)
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        endpoint: str = "https://open.feishu.cn",
        timeout: float = 30.0,
    ) -> None:
        self.app_id = app_id
        self._app_secret = app_secret
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._user_names: dict[str, str] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def tenant_token(self) -> str:
        """Get a tenant access token, refreshing it when close to expiry.

        Raises:
            CollaboratorError: If authentication fails
        """
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        data = await self._post_json(
            "/open-apis/auth/v3/tenant_access_token/internal",
            {"app_id": self.app_id, "app_secret": self._app_secret},
            authenticated=False,
        )
        token = data.get("tenant_access_token")
        if not token:
            raise CollaboratorError("Feishu auth response had no tenant_access_token")

        self._token = token
        expires_in = int(data.get("expire", 7200))
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN, 0)
        return token

    async def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Make an authenticated request and return the response's data object.

        Raises:
            CollaboratorError: On transport errors or a non-zero Feishu code
        """
        token = await self.tenant_token()
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self._get_client().request(
                method, f"{self.endpoint}{path}", headers=headers, **kwargs
            )
        except httpx.TimeoutException as e:
            raise CollaboratorError(f"Timeout calling Feishu {path}") from e
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Feishu request failed: {e}") from e
        return self._unwrap(response, path).get("data") or {}

    async def user_name(self, open_id: str) -> str:
        """Look up a user's display name, or "" if the app may not read it.

        Results are cached for the life of the client.
        """
        if open_id not in self._user_names:
            try:
                data = await self.request(
                    "GET", f"/open-apis/contact/v3/users/{open_id}", params={"user_id_type": "open_id"}
                )
                self._user_names[open_id] = data.get("user", {}).get("name", "")
            except CollaboratorError as e:
                logger.warning(f"Could not resolve Feishu user {open_id}: {e}")
                self._user_names[open_id] = ""
        return self._user_names[open_id]

    async def _post_json(self, path: str, body: dict[str, Any], authenticated: bool = True) -> dict[str, Any]:
        if authenticated:
            return await self.request("POST", path, json=body)
        try:
            response = await self._get_client().post(f"{self.endpoint}{path}", json=body)
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Feishu request failed: {e}") from e
        return self._unwrap(response, path)

    @staticmethod
    def _unwrap(response: httpx.Response, path: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise CollaboratorError(f"Feishu {path} returned invalid JSON (status {response.status_code})") from e
        code = payload.get("code", -1)
        if response.status_code != 200 or code != 0:
            raise CollaboratorError(f"Feishu error {code}: {payload.get('msg', 'unknown error')}")
        return payload

    async def aclose(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def message_text(msg_type: str, raw_content: str) -> str:
    """Flatten a Feishu message body to plain text.

    Handles text and post (rich text) messages; other types yield "".
    """
    try:
        content = json.loads(raw_content or "{}")
    except json.JSONDecodeError:
        return ""

    if msg_type == "text":
        return str(content.get("text", ""))

    if msg_type == "post":
        # Post bodies are either {title, content} or keyed by locale
        if "content" not in content and content:
            content = next(iter(content.values()), {})
        parts = [content.get("title", "")]
        for line in content.get("content", []):
            parts.append("".join(el.get("text", "") for el in line if isinstance(el, dict)))
        return "\n".join(p for p in parts if p)

    return ""


class FeishuChatHistory(ChatHistory):
    """Recent chat messages with sender names filled in.

    Message listings only carry open_ids, so sender names come from the
    mentions seen in the same page or, failing that, the contact API.
    Mention placeholders (@_user_1) in message text are replaced with the
    mentioned user's name.
    """

    def __init__(self, client: FeishuClient, resolve_names: bool = True) -> None:
        self.client = client
        self.resolve_names = resolve_names

    async def fetch(self, chat_id: str, limit: int = 50) -> list[ChatMessage]:
        """Fetch up to limit recent messages, oldest first."""
        messages: list[ChatMessage] = []
        names: dict[str, str] = {}
        page_token: str | None = None

        while len(messages) < limit:
            params: dict[str, Any] = {
                "container_id_type": "chat",
                "container_id": chat_id,
                "sort_type": "ByCreateTimeDesc",
                "page_size": min(MAX_PAGE_SIZE, limit - len(messages)),
            }
            if page_token:
                params["page_token"] = page_token

            data = await self.client.request("GET", "/open-apis/im/v1/messages", params=params)
            for item in data.get("items", []):
                text = message_text(item.get("msg_type", ""), item.get("body", {}).get("content", ""))
                if not text:
                    continue
                # Longest key first so @_user_1 does not clobber @_user_10
                mentions = sorted(item.get("mentions") or [], key=lambda m: len(m.get("key", "")), reverse=True)
                for mention in mentions:
                    if mention.get("id") and mention.get("name"):
                        names[mention["id"]] = mention["name"]
                    if mention.get("key"):
                        text = text.replace(mention["key"], f"@{mention.get('name', '')}")
                sender = item.get("sender", {})
                if sender.get("sender_type", "user") != "user":
                    # Apps and bots have no contact entry
                    names.setdefault(sender.get("id", ""), "")
                created = item.get("create_time")
                messages.append(
                    ChatMessage(
                        message_id=item.get("message_id", ""),
                        sender_id=sender.get("id", ""),
                        content=text,
                        create_time=datetime.fromtimestamp(int(created) / 1000) if created else None,
                    )
                )

            page_token = data.get("page_token")
            if not data.get("has_more") or not page_token:
                break

        logger.info(f"Fetched {len(messages)} messages from chat {chat_id}")
        messages = messages[:limit]
        await self._fill_sender_names(messages, names)
        messages.reverse()
        return messages

    async def _fill_sender_names(self, messages: list[ChatMessage], names: dict[str, str]) -> None:
        for message in messages:
            sender = message.sender_id
            if not sender:
                continue
            if sender not in names and self.resolve_names:
                names[sender] = await self.client.user_name(sender)
            message.sender_name = names.get(sender, "")


class FeishuDocReader(DocumentReader):
    """Reads docx documents and wiki nodes backed by docx."""

    def __init__(self, client: FeishuClient) -> None:
        self.client = client

    async def read(self, url: str) -> Document:
        match = _DOC_URL.search(url)
        if not match:
            raise CollaboratorError(f"Not a Feishu document link: {url}")
        kind, token = match.groups()

        title = ""
        if kind == "wiki":
            data = await self.client.request("GET", "/open-apis/wiki/v2/spaces/get_node", params={"token": token})
            node = data.get("node", {})
            if node.get("obj_type") != "docx":
                raise CollaboratorError(f"Unsupported wiki node type: {node.get('obj_type')}")
            token = node.get("obj_token", "")
            title = node.get("title", "")
        elif kind == "docs":
            raise CollaboratorError("Legacy /docs/ documents are not supported; open it as docx")

        if not title:
            meta = await self.client.request("GET", f"/open-apis/docx/v1/documents/{token}")
            title = meta.get("document", {}).get("title", "")

        data = await self.client.request("GET", f"/open-apis/docx/v1/documents/{token}/raw_content")
        return Document(url=url, title=title, content=data.get("content", ""), metadata={"token": token})


class FeishuTaskTracker(TaskTracker):
    """Creates Feishu tasks mirroring new issues."""

    def __init__(self, client: FeishuClient) -> None:
        self.client = client

    async def create_task(
        self,
        summary: str,
        due_date: str | None = None,
        assignees: list[str] | None = None,
    ) -> TrackerResult:
        # Assignees are GitLab usernames, which Feishu cannot resolve
        body: dict[str, Any] = {"summary": summary}
        if due_date:
            try:
                due = datetime.combine(datetime.strptime(due_date, "%Y-%m-%d").date(), dt_time(18, 0))
            except ValueError:
                logger.warning(f"Ignoring malformed due date for task: {due_date}")
            else:
                body["due"] = {"timestamp": str(int(due.timestamp() * 1000)), "is_all_day": True}

        try:
            data = await self.client.request("POST", "/open-apis/task/v2/tasks", json=body)
        except CollaboratorError as e:
            return TrackerResult(success=False, error=str(e))

        task = data.get("task", {})
        return TrackerResult(success=True, output=task.get("url") or task.get("guid", ""))


__all__ = [
    "FeishuChatHistory",
    "FeishuClient",
    "FeishuDocReader",
    "FeishuTaskTracker",
    "message_text",
]
