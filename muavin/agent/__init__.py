"""Agent-side collaborators: context, memory and background agent files."""

from muavin.agent.agents import AgentStore
from muavin.agent.context import ContextBuilder
from muavin.agent.memory import MemoryBackend, MemoryStore

__all__ = ["AgentStore", "ContextBuilder", "MemoryBackend", "MemoryStore"]
