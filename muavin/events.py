"""System event sink.

Structured, append-only record of what the relay and job runners did. Each
event is one JSON object per line in ``events.jsonl`` under the data
directory. Writing is fire-and-forget: a failing sink is logged and never
blocks or breaks the caller.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Protocol

from loguru import logger

EventLevel = Literal["info", "warn", "error", "critical"]
EventComponent = Literal["relay", "jobs", "processor", "heartbeat", "ingest", "system"]


class EventSink(Protocol):
    def log_event(
        self,
        *,
        level: EventLevel,
        component: EventComponent,
        event_type: str,
        message: str,
        run_id: str | None = None,
        related_block_id: str | None = None,
        related_artifact_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None: ...


class JsonlEventSink:
    """Append-only JSONL event log."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def log_event(
        self,
        *,
        level: EventLevel,
        component: EventComponent,
        event_type: str,
        message: str,
        run_id: str | None = None,
        related_block_id: str | None = None,
        related_artifact_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        entry = {
            "created_at": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "component": component,
            "event_type": event_type,
            "message": message,
            "run_id": run_id,
            "related_block_id": related_block_id,
            "related_artifact_id": related_artifact_id,
            "payload": payload or {},
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except Exception:
            logger.opt(exception=True).warning("Failed to write system event to {}", self._path)


class NullEventSink:
    """Sink that drops everything (used when no event log is wanted)."""

    def log_event(self, **kwargs: Any) -> None:
        return None


def load_events(path: Path) -> list[dict[str, Any]]:
    """Read all events from an event log, oldest first."""
    if not path.exists():
        return []

    events: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return events
