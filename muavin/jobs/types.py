"""Job types."""

from dataclasses import dataclass
from enum import Enum
from typing import Literal

JobAction = Literal["memory-health", "extract-memories", "cleanup-agents", "none"]
JOB_ACTIONS: tuple[str, ...] = ("memory-health", "extract-memories", "cleanup-agents", "none")


@dataclass(frozen=True)
class Job:
    """A job definition loaded from the jobs file."""

    id: str
    name: str = ""
    enabled: bool = True
    action: JobAction = "none"
    prompt: str | None = None
    description: str | None = None
    schedule: str | None = None
    type: Literal["system", "default"] = "default"
    model: str | None = None
    skip_context: bool = False
    timeout_ms: int | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class JobRunStatus(str, Enum):
    """How a resolved job invocation ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
