"""Outbox: pending results waiting to be delivered to a chat.

Producers (job runs, background agents) drop one JSON file per result into
``<data dir>/outbox``. The relay reads them oldest first, delivers them and
deletes the files it managed to send.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from muavin.utils.helpers import load_json, now_ms, save_json, utc_iso

if TYPE_CHECKING:
    from muavin.channels.telegram import Format, TelegramDelivery


@dataclass
class OutboxEntry:
    source: str
    source_id: str
    task: str
    result: str
    chat_id: str
    created_at: str = field(default_factory=utc_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> OutboxEntry:
        return OutboxEntry(
            source=str(data.get("source") or ""),
            source_id=str(data.get("source_id") or ""),
            task=str(data.get("task") or ""),
            result=str(data.get("result") or ""),
            chat_id=str(data.get("chat_id") or ""),
            created_at=str(data.get("created_at") or ""),
        )


@dataclass
class PendingItem:
    filename: str
    entry: OutboxEntry


class Outbox:
    """Directory-backed, append-only outbox."""

    def __init__(self, outbox_dir: Path):
        self.outbox_dir = outbox_dir

    def write(self, entry: OutboxEntry) -> Path:
        """Persist ``entry``; it is visible to the relay once this returns.

        Raises:
            OSError: if the entry could not be written.
        """
        name = f"{now_ms()}-{entry.source}-{uuid.uuid4().hex[:8]}.json"
        path = self.outbox_dir / name
        save_json(path, entry.to_dict())
        logger.debug("Outbox: wrote {} ({}:{})", name, entry.source, entry.source_id)
        return path

    def read_pending(self) -> list[PendingItem]:
        """All pending entries, oldest first."""
        if not self.outbox_dir.exists():
            return []

        items: list[PendingItem] = []
        for path in sorted(self.outbox_dir.glob("*.json")):
            data = load_json(path)
            if not isinstance(data, dict):
                logger.warning("Outbox: ignoring malformed entry {}", path.name)
                continue
            items.append(PendingItem(filename=path.name, entry=OutboxEntry.from_dict(data)))
        return items

    def clear(self, filenames: list[str]) -> int:
        """Delete delivered entries by file name. Returns how many were removed."""
        removed = 0
        for name in filenames:
            path = self.outbox_dir / Path(name).name
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed


def format_entry(entry: OutboxEntry) -> str:
    """Render an outbox entry as a chat message."""
    if entry.task:
        return f"**{entry.task}**\n\n{entry.result}"
    return entry.result


async def flush_outbox(outbox: Outbox, delivery: TelegramDelivery, fmt: Format | None = "rich") -> int:
    """Deliver every pending entry; only delivered entries are removed.

    Returns the number of entries delivered.
    """
    delivered: list[str] = []
    for item in outbox.read_pending():
        if not item.entry.chat_id:
            logger.warning("Outbox: entry {} has no chat id, leaving it in place", item.filename)
            continue
        if await delivery.deliver(item.entry.chat_id, format_entry(item.entry), fmt):
            delivered.append(item.filename)
        else:
            logger.warning("Outbox: delivery of {} failed, will retry on next flush", item.filename)

    outbox.clear(delivered)
    if delivered:
        logger.info("Outbox: delivered {} item(s)", len(delivered))
    return len(delivered)
