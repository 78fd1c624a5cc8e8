"""Small filesystem and time helpers shared across modules."""

from __future__ import annotations

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating parents as needed."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def now_ms() -> int:
    return int(time.time() * 1000)


def utc_iso(dt: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    dt = dt or datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_local_time(dt: datetime | None = None) -> str:
    """Human-readable local time, e.g. 'Sunday, October 18, 2026 at 09:05 AM'."""
    local = (dt or datetime.now()).astimezone()
    return local.strftime("%A, %B %d, %Y at %I:%M %p")


def load_json(path: Path) -> Any | None:
    """Read a JSON document, returning None when it is missing or unreadable."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to read {}: {}", path, e)
        return None


def save_json(path: Path, data: Any) -> None:
    """Write a whole JSON document atomically (fsynced temp file + replace)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(json.dumps(data, indent=2, ensure_ascii=False))
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)
