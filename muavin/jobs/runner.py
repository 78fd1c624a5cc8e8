"""Job runner: execute one job invocation and hand its result to the outbox."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Callable, Protocol

from loguru import logger

from muavin.agent.agents import AgentStore
from muavin.agent.memory import MemoryBackend
from muavin.events import EventSink, NullEventSink
from muavin.jobs.store import JobStateStore, JobStore
from muavin.jobs.types import Job, JobRunStatus
from muavin.outbox import Outbox, OutboxEntry
from muavin.providers.claude_code_provider import Reasoner
from muavin.utils.helpers import format_local_time, now_ms

CLEANUP_AGENTS_MAX_AGE_MS = 7 * 24 * 60 * 60_000
CLEANUP_UPLOADS_MAX_AGE_MS = 24 * 60 * 60_000
SKIP_RESPONSE = "SKIP"


class ContextSource(Protocol):
    async def build(self, query: str, chat_id: int | str | None = None, recent_count: int | None = None) -> str: ...


def is_skip_response(text: str) -> bool:
    return text.strip() == SKIP_RESPONSE


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class JobRunner:
    """Run jobs by id.

    A resolved job always ends with exactly one run-state update, whether it
    succeeded, failed or was skipped. A missing or disabled job leaves the run
    state untouched.
    """

    def __init__(
        self,
        *,
        jobs: JobStore,
        state: JobStateStore,
        outbox: Outbox,
        owner: int | str,
        memory: MemoryBackend | None = None,
        agents: AgentStore | None = None,
        context: ContextSource | None = None,
        reasoner: Reasoner | None = None,
        events: EventSink | None = None,
        max_turns: int = 100,
        timeout_ms: int = 600_000,
        recent_message_count: int = 100,
        clock: Callable[[], int] = now_ms,
    ):
        self.jobs = jobs
        self.state = state
        self.outbox = outbox
        self.owner = owner
        self.memory = memory
        self.agents = agents
        self.context = context
        self.reasoner = reasoner
        self.events = events or NullEventSink()
        self.max_turns = max_turns
        self.timeout_ms = timeout_ms
        self.recent_message_count = recent_message_count
        self._clock = clock

    def _resolve(self, job_id: str) -> Job | None:
        all_jobs = self.jobs.load()
        if all_jobs is None:
            logger.info("[{}] jobs file missing or unreadable, exiting", job_id)
            return None

        job = next((j for j in all_jobs if j.id == job_id), None)
        if job is None or not job.enabled:
            logger.info("[{}] job not found or disabled, exiting", job_id)
            return None
        return job

    async def run(self, job_id: str) -> JobRunStatus | None:
        """Run ``job_id`` once. Returns None when the job was not resolved."""
        job = self._resolve(job_id)
        if job is None:
            return None

        run_id = uuid.uuid4().hex[:12]
        logger.info("[{}] running...", job.id)
        error: str | None = None

        try:
            status = await self._execute(job)
        except Exception as e:
            logger.exception("[{}] error", job.id)
            status = JobRunStatus.FAILED
            error = _error_message(e)
            self._notify_failure(job, error)

        self.state.mark_run(job.id, self._clock())

        self.events.log_event(
            level="error" if status is JobRunStatus.FAILED else "info",
            component="jobs",
            event_type=f"job_{status.value}",
            message=f"Job {job.id} {status.value}" + (f": {error}" if error else ""),
            run_id=run_id,
            payload={"job_id": job.id, "action": job.action},
        )
        logger.info("[{}] done", job.id)
        return status

    async def _execute(self, job: Job) -> JobRunStatus:
        if job.action == "memory-health":
            report = await self._require(self.memory, "memory backend").run_health_check(job.model)
            logger.info("[{}] health check complete: {}", job.id, report.summary())
        elif job.action == "extract-memories":
            extracted = await self._require(self.memory, "memory backend").extract_memories(job.model)
            logger.info("[{}] extracted {} memories", job.id, extracted)
        elif job.action == "cleanup-agents":
            agents = self._require(self.agents, "agent store")
            cleaned_agents = agents.cleanup_agents(CLEANUP_AGENTS_MAX_AGE_MS)
            cleaned_uploads = agents.cleanup_uploads(CLEANUP_UPLOADS_MAX_AGE_MS)
            logger.info(
                "[{}] cleaned {} old agent files, {} old uploads", job.id, cleaned_agents, cleaned_uploads
            )
        elif job.prompt:
            return await self._run_prompt(job, job.prompt)
        else:
            logger.info("[{}] no action or prompt, nothing to do", job.id)
        return JobRunStatus.SUCCEEDED

    async def _run_prompt(self, job: Job, prompt: str) -> JobRunStatus:
        reasoner = self._require(self.reasoner, "reasoner")
        full_prompt = f"[Job: {job.id}] Time: {format_local_time()}\n\n{prompt}"

        append_system_prompt: str | None = None
        if self.context is not None and not job.skip_context:
            append_system_prompt = await self.context.build(
                prompt,
                chat_id=self.owner,
                recent_count=self.recent_message_count,
            )

        result = await reasoner.invoke(
            full_prompt,
            no_session_persistence=True,
            max_turns=self.max_turns,
            timeout_ms=job.timeout_ms or self.timeout_ms,
            append_system_prompt=append_system_prompt or None,
            model=job.model,
        )

        if is_skip_response(result.text):
            logger.info("[{}] SKIP", job.id)
            return JobRunStatus.SKIPPED

        self.outbox.write(
            OutboxEntry(
                source="job",
                source_id=job.id,
                task=job.display_name,
                result=result.text,
                chat_id=str(self.owner),
            )
        )
        logger.info("[{}] wrote to outbox", job.id)
        return JobRunStatus.SUCCEEDED

    def _notify_failure(self, job: Job, error: str) -> None:
        try:
            self.outbox.write(
                OutboxEntry(
                    source="job",
                    source_id=job.id,
                    task=job.display_name,
                    result=f'Job "{job.display_name}" failed: {error}',
                    chat_id=str(self.owner),
                )
            )
        except Exception:
            logger.opt(exception=True).error("[{}] failed to write error to outbox", job.id)

    @staticmethod
    def _require(collaborator, what: str):
        if collaborator is None:
            raise RuntimeError(f"{what} not configured")
        return collaborator


def build_runner(config, data_dir: Path) -> JobRunner:
    """Wire a runner with the default file-backed collaborators."""
    from muavin.agent.context import ContextBuilder
    from muavin.agent.memory import MemoryStore
    from muavin.events import JsonlEventSink
    from muavin.providers.claude_code_provider import ClaudeCodeProvider
    from muavin.session.history import ChatHistory

    history = ChatHistory(data_dir / "history")
    reasoner = ClaudeCodeProvider(default_model=config.model, cwd=data_dir)
    memory = MemoryStore(data_dir / "memory", history, owner_chat_id=str(config.owner), reasoner=reasoner)
    agents = AgentStore(data_dir / "agents", data_dir / "uploads")

    return JobRunner(
        jobs=JobStore.in_dir(data_dir),
        state=JobStateStore(data_dir / "job-state.json"),
        outbox=Outbox(data_dir / "outbox"),
        owner=config.owner,
        memory=memory,
        agents=agents,
        context=ContextBuilder(data_dir, memory, history, agents=agents),
        reasoner=reasoner,
        events=JsonlEventSink(data_dir / "events.jsonl"),
        max_turns=config.job_max_turns,
        timeout_ms=config.job_timeout_ms,
        recent_message_count=config.recent_message_count,
    )
