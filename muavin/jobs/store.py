"""Job definitions and last-run state on disk."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from muavin.jobs.types import JOB_ACTIONS, Job
from muavin.utils.helpers import load_json, save_json


def _coerce_positive_int(value: Any) -> int | None:
    try:
        out = int(value)
        return out if out > 0 else None
    except (TypeError, ValueError):
        return None


def _parse_job(row: dict[str, Any]) -> Job | None:
    job_id = str(row.get("id") or "").strip()
    if not job_id:
        return None

    action = str(row.get("action") or "none").strip()
    if action not in JOB_ACTIONS:
        logger.warning("Job {} has unknown action '{}', treating as none", job_id, action)
        action = "none"

    prompt = row.get("prompt")
    job_type = row.get("type")
    return Job(
        id=job_id,
        name=str(row.get("name") or ""),
        enabled=bool(row.get("enabled", True)),
        action=action,  # type: ignore[arg-type]
        prompt=prompt if isinstance(prompt, str) and prompt.strip() else None,
        description=row.get("description"),
        schedule=row.get("schedule"),
        type=job_type if job_type in ("system", "default") else "default",
        model=row.get("model"),
        skip_context=bool(row.get("skipContext", row.get("skip_context", False))),
        timeout_ms=_coerce_positive_int(row.get("timeoutMs", row.get("timeout_ms"))),
    )


def compute_next_run_ms(expr: str | None, base_ms: int) -> int | None:
    """Next fire time of a cron expression after ``base_ms`` (local time)."""
    if not expr:
        return None
    try:
        from croniter import croniter

        tz = datetime.now().astimezone().tzinfo
        base_dt = datetime.fromtimestamp(base_ms / 1000, tz=tz)
        return int(croniter(expr, base_dt).get_next(datetime).timestamp() * 1000)
    except Exception:
        return None


class JobStore:
    """Ordered list of jobs in ``jobs.yaml`` (or legacy ``jobs.json``)."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def in_dir(cls, data_dir: Path) -> JobStore:
        yaml_path = data_dir / "jobs.yaml"
        return cls(yaml_path if yaml_path.exists() else data_dir / "jobs.json")

    def load(self) -> list[Job] | None:
        """All jobs in file order, or None when the file is missing or unreadable.

        ``jobs.json`` is parsed as JSON, anything else as YAML.
        """
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
            payload = json.loads(raw) if self.path.suffix == ".json" else yaml.safe_load(raw)
        except Exception as e:
            logger.warning("Failed to read jobs file {}: {}", self.path, e)
            return None

        rows = payload.get("jobs") if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            logger.warning("Jobs file {} is not a list of jobs", self.path)
            return None

        jobs: list[Job] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            job = _parse_job(row)
            if job is not None:
                jobs.append(job)
        return jobs

    def get(self, job_id: str) -> Job | None:
        for job in self.load() or []:
            if job.id == job_id:
                return job
        return None


class JobStateStore:
    """Last-run timestamps keyed by job id, stored as one JSON document.

    Updates are whole-document read-modify-write with no locking: two
    different jobs finishing at the same moment can lose one update. Runs of
    the same job id are expected to be serialized by the scheduler.
    """

    def __init__(self, path: Path):
        self.path = path

    def read(self) -> dict[str, int]:
        data = load_json(self.path)
        if not isinstance(data, dict):
            return {}
        state: dict[str, int] = {}
        for key, value in data.items():
            try:
                state[str(key)] = int(value)
            except (TypeError, ValueError):
                continue
        return state

    def write(self, state: dict[str, int]) -> None:
        save_json(self.path, state)

    def mark_run(self, job_id: str, at_ms: int) -> int:
        """Record a run of ``job_id``; returns the stored timestamp.

        Stored values for one job only ever increase, even when two runs land
        in the same millisecond.
        """
        state = self.read()
        previous = state.get(job_id)
        if previous is not None and at_ms <= previous:
            at_ms = previous + 1
        state[job_id] = at_ms
        self.write(state)
        return at_ms
