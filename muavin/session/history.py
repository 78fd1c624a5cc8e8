"""Per-chat message history.

One JSONL file per chat under ``<data dir>/history``. The delivery engine
appends assistant messages after a successful send; the context builder and
memory extraction read them back.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Literal

from loguru import logger

from muavin.utils.helpers import utc_iso

Role = Literal["user", "assistant"]


@dataclass
class ChatMessage:
    role: Role
    content: str
    chat_id: str
    created_at: str


class ChatHistory:
    """Append-only chat log keyed by chat id."""

    def __init__(self, history_dir: Path) -> None:
        self.history_dir = history_dir

    def _path(self, chat_id: str) -> Path:
        safe = str(chat_id).replace("/", "_")
        return self.history_dir / f"{safe}.jsonl"

    async def log_message(self, role: Role, content: str, chat_id: str) -> None:
        """Append one message to the chat's log off the event loop."""
        message = ChatMessage(role=role, content=content, chat_id=str(chat_id), created_at=utc_iso())
        await asyncio.to_thread(self._append, message)

    def _append(self, message: ChatMessage) -> None:
        path = self._path(message.chat_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(message), ensure_ascii=False) + "\n")

    def _load(self, chat_id: str) -> list[ChatMessage]:
        path = self._path(str(chat_id))
        if not path.exists():
            return []

        messages: list[ChatMessage] = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                    messages.append(
                        ChatMessage(
                            role=row["role"],
                            content=row["content"],
                            chat_id=str(row.get("chat_id", chat_id)),
                            created_at=row.get("created_at", ""),
                        )
                    )
                except (json.JSONDecodeError, KeyError):
                    logger.debug("Skipping malformed history line in {}", path)
        return messages

    def recent(self, chat_id: str, limit: int, assistant_only: bool = False) -> list[ChatMessage]:
        """Return the latest ``limit`` messages for a chat, oldest first."""
        if limit <= 0:
            return []
        messages = self._load(chat_id)
        if assistant_only:
            messages = [m for m in messages if m.role == "assistant"]
        return messages[-limit:]

    def since(self, chat_id: str, created_after: str | None) -> list[ChatMessage]:
        """Messages strictly newer than an ISO timestamp (all when None)."""
        messages = self._load(chat_id)
        if not created_after:
            return messages
        return [m for m in messages if m.created_at > created_after]
