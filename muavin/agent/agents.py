"""Background agent records and upload housekeeping.

Each background agent is a JSON file under ``<data dir>/agents``. Finished
agents (``completed`` or ``failed``) are pruned by age, and the directory is
capped so it never grows without bound.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from muavin.utils.helpers import load_json

MAX_TERMINAL_AGENTS = 100
_TERMINAL_STATUSES = {"completed", "failed"}


def _iso_to_ms(value: Any) -> int:
    if not isinstance(value, str) or not value.strip():
        return 0
    try:
        return int(datetime.fromisoformat(value.strip().replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return 0


class AgentStore:
    """Directory of agent JSON records plus the uploads scratch directory."""

    def __init__(self, agents_dir: Path, uploads_dir: Path):
        self.agents_dir = agents_dir
        self.uploads_dir = uploads_dir

    def list_agents(self, status: str | None = None) -> list[dict[str, Any]]:
        if not self.agents_dir.exists():
            return []
        agents: list[dict[str, Any]] = []
        for path in sorted(self.agents_dir.glob("*.json")):
            data = load_json(path)
            if not isinstance(data, dict):
                continue
            if status and data.get("status") != status:
                continue
            data["_filename"] = path.name
            agents.append(data)
        return agents

    def cleanup_agents(self, max_age_ms: int) -> int:
        """Delete finished agents older than ``max_age_ms`` or beyond the cap.

        Newest finished agents are kept first. Returns the number deleted.
        """
        now = int(time.time() * 1000)
        terminal = [a for a in self.list_agents() if a.get("status") in _TERMINAL_STATUSES]
        terminal.sort(
            key=lambda a: _iso_to_ms(a.get("completedAt") or a.get("createdAt")),
            reverse=True,
        )

        deleted = 0
        for index, agent in enumerate(terminal):
            finished_ms = _iso_to_ms(agent.get("completedAt") or agent.get("createdAt"))
            too_old = now - finished_ms > max_age_ms
            over_cap = index >= MAX_TERMINAL_AGENTS
            if not (too_old or over_cap):
                continue
            try:
                (self.agents_dir / agent["_filename"]).unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to delete agent file {}: {}", agent["_filename"], e)
        return deleted

    def cleanup_uploads(self, max_age_ms: int) -> int:
        """Delete uploaded files whose mtime is older than ``max_age_ms``."""
        if not self.uploads_dir.exists():
            return 0
        cutoff = time.time() - max_age_ms / 1000
        deleted = 0
        for path in self.uploads_dir.iterdir():
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
            except FileNotFoundError:
                continue
        return deleted

    def summary(self) -> str:
        """One-line overview of pending and running agents for prompt context."""
        pending = len(self.list_agents(status="pending"))
        running = len(self.list_agents(status="running"))
        if not pending and not running:
            return ""
        return f"[Agents]\n{running} running, {pending} pending"
