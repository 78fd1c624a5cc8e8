"""Long-term memory: MEMORY.md entries plus extraction from chat history."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import json_repair
from loguru import logger

from muavin.utils.helpers import ensure_dir, load_json, save_json

if TYPE_CHECKING:
    from muavin.providers.claude_code_provider import Reasoner
    from muavin.session.history import ChatHistory, ChatMessage


_ENTRY_RE = re.compile(r"^-\s*\[(?P<type>[^\]]+)\]\s*(?P<content>.*)$")
_WORD_RE = re.compile(r"[a-z0-9]{3,}")

_EXTRACT_PROMPT = """Extract durable facts about the user from the conversation below.
Only keep things worth remembering for weeks: preferences, people, projects,
commitments, recurring routines. Skip small talk and anything already listed
under Known Memories.

Respond with JSON only, shaped as:
{{"memories": [{{"type": "fact|preference|goal|person|project", "content": "..."}}]}}

## Known Memories
{known}

## Conversation
{conversation}"""


@dataclass
class MemoryEntry:
    type: str
    content: str

    def render(self) -> str:
        return f"- [{self.type}] {self.content}"


@dataclass
class MemoryHit:
    source: str
    content: str
    score: int


@dataclass
class HealthReport:
    total: int
    duplicates_removed: int
    empty_removed: int

    def summary(self) -> str:
        return (
            f"{self.total} memories, removed {self.duplicates_removed} duplicate(s) "
            f"and {self.empty_removed} empty entr{'y' if self.empty_removed == 1 else 'ies'}"
        )


class MemoryBackend(Protocol):
    async def run_health_check(self, model: str | None = None) -> HealthReport: ...

    async def extract_memories(self, model: str | None = None) -> int: ...

    def search(self, query: str, limit: int = 3) -> list[MemoryHit]: ...


class MemoryStore:
    """MEMORY.md-backed memory with LLM extraction from the owner's chat."""

    _MAX_LINE_CONTENT_CHARS = 700
    _MAX_EXTRACTION_MESSAGES = 200

    def __init__(
        self,
        memory_dir: Path,
        history: ChatHistory,
        owner_chat_id: str,
        reasoner: Reasoner | None = None,
    ):
        self.memory_dir = memory_dir
        self.memory_file = memory_dir / "MEMORY.md"
        self.state_file = memory_dir / "extract-state.json"
        self.history = history
        self.owner_chat_id = str(owner_chat_id)
        self.reasoner = reasoner

    def read_entries(self) -> list[MemoryEntry]:
        if not self.memory_file.exists():
            return []
        entries: list[MemoryEntry] = []
        for line in self.memory_file.read_text(encoding="utf-8").splitlines():
            match = _ENTRY_RE.match(line.strip())
            if match:
                entries.append(MemoryEntry(type=match.group("type").strip(), content=match.group("content").strip()))
        return entries

    def write_entries(self, entries: list[MemoryEntry]) -> None:
        ensure_dir(self.memory_dir)
        body = "\n".join(entry.render() for entry in entries)
        self.memory_file.write_text(f"# Memory\n\n{body}\n" if body else "# Memory\n", encoding="utf-8")

    @staticmethod
    def _normalize(text: str) -> str:
        return " ".join(text.lower().split())

    @classmethod
    def _clip_text(cls, text: str, max_chars: int) -> str:
        text = " ".join(text.split())
        if len(text) <= max_chars:
            return text
        return text[: max_chars - 3].rstrip() + "..."

    def search(self, query: str, limit: int = 3) -> list[MemoryHit]:
        """Rank entries by how many query words they share."""
        words = set(_WORD_RE.findall(query.lower()))
        if not words or limit <= 0:
            return []

        hits: list[MemoryHit] = []
        for entry in self.read_entries():
            score = len(words & set(_WORD_RE.findall(entry.content.lower())))
            if score:
                hits.append(MemoryHit(source=entry.type, content=entry.content, score=score))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    async def run_health_check(self, model: str | None = None) -> HealthReport:
        """Drop empty and duplicate entries from MEMORY.md."""
        entries = self.read_entries()
        seen: set[str] = set()
        kept: list[MemoryEntry] = []
        duplicates = empty = 0

        for entry in entries:
            key = self._normalize(entry.content)
            if not key:
                empty += 1
                continue
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            kept.append(entry)

        if duplicates or empty:
            self.write_entries(kept)
        return HealthReport(total=len(kept), duplicates_removed=duplicates, empty_removed=empty)

    async def extract_memories(self, model: str | None = None) -> int:
        """Turn new owner-chat messages into memories. Returns how many were added."""
        if self.reasoner is None:
            raise RuntimeError("memory extraction needs a reasoner")

        state = load_json(self.state_file) or {}
        cursor = state.get("last_extracted_at") if isinstance(state, dict) else None
        messages = self.history.since(self.owner_chat_id, cursor)
        if not messages:
            return 0
        messages = messages[-self._MAX_EXTRACTION_MESSAGES:]

        entries = self.read_entries()
        prompt = _EXTRACT_PROMPT.format(
            known="\n".join(e.render() for e in entries) or "(none)",
            conversation="\n".join(self._format_message(m) for m in messages),
        )
        result = await self.reasoner.invoke(prompt, no_session_persistence=True, max_turns=1, model=model)

        seen = {self._normalize(e.content) for e in entries}
        added = 0
        for item in self._parse_memories(result.text):
            key = self._normalize(item.content)
            if key and key not in seen:
                seen.add(key)
                entries.append(item)
                added += 1

        if added:
            self.write_entries(entries)
        save_json(self.state_file, {"last_extracted_at": messages[-1].created_at})
        logger.debug("Memory extraction: {} messages -> {} new memories", len(messages), added)
        return added

    def _format_message(self, message: ChatMessage) -> str:
        stamp = message.created_at[:16] or "?"
        content = self._clip_text(message.content, self._MAX_LINE_CONTENT_CHARS)
        return f"[{stamp}] {message.role.upper()}: {content}"

    @staticmethod
    def _parse_memories(text: str) -> list[MemoryEntry]:
        try:
            data = json_repair.loads(text)
        except Exception:
            logger.warning("Memory extraction: could not parse model output")
            return []

        rows = data.get("memories") if isinstance(data, dict) else data
        if not isinstance(rows, list):
            return []

        out: list[MemoryEntry] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            content = row.get("content")
            if not isinstance(content, str) or not content.strip():
                continue
            mem_type = row.get("type")
            if not isinstance(mem_type, str) or not mem_type.strip():
                mem_type = "fact"
            out.append(MemoryEntry(type=mem_type.strip(), content=content.strip()))
        return out
