"""Context builder for job and relay prompts."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from muavin.agent.agents import AgentStore
from muavin.agent.memory import MemoryBackend
from muavin.session.history import ChatHistory


class ContextBuilder:
    """
    Builds the supplementary system prompt appended to a Claude run.

    Sections, in order: the persona file, memories matching the query,
    recent messages from the chat, and a summary of background agents.
    Any section with nothing to say is left out.
    """

    PERSONA_FILE = "muavin.md"

    def __init__(
        self,
        data_dir: Path,
        memory: MemoryBackend,
        history: ChatHistory,
        agents: AgentStore | None = None,
        memory_limit: int = 3,
    ):
        self.data_dir = data_dir
        self.memory = memory
        self.history = history
        self.agents = agents
        self.memory_limit = memory_limit

    def _load_persona(self) -> str:
        path = self.data_dir / self.PERSONA_FILE
        if not path.exists():
            return ""
        return path.read_text(encoding="utf-8").strip()

    async def build(self, query: str, chat_id: int | str | None = None, recent_count: int | None = None) -> str:
        """
        Assemble context for ``query``.

        Args:
            query: Text used to look up relevant memories.
            chat_id: Chat whose recent messages should be included.
            recent_count: How many recent messages to include.

        Returns:
            Context text, possibly empty.
        """
        parts: list[str] = []

        persona = self._load_persona()
        if persona:
            parts.append(persona)

        try:
            hits = self.memory.search(query, limit=self.memory_limit)
        except Exception as e:
            logger.warning("Context: memory search failed: {}", e)
            hits = []
        if hits:
            parts.append("[Memory]\n" + "\n".join(f"[{h.source}] {h.content}" for h in hits))

        if chat_id is not None and recent_count:
            recent = self.history.recent(str(chat_id), recent_count)
            if recent:
                parts.append("[Recent Messages]\n" + "\n".join(f"{m.role}: {m.content}" for m in recent))

        if self.agents is not None:
            agent_summary = self.agents.summary()
            if agent_summary:
                parts.append(agent_summary)

        return "\n\n".join(parts)
