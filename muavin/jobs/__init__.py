"""Scheduled job definitions, run state and the runner."""

from muavin.jobs.runner import JobRunner, build_runner
from muavin.jobs.store import JobStateStore, JobStore
from muavin.jobs.types import Job, JobRunStatus

__all__ = ["Job", "JobRunStatus", "JobRunner", "JobStateStore", "JobStore", "build_runner"]
