"""Claude Code provider: one-shot prompts through the claude-agent-sdk package."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from claude_agent_sdk import AssistantMessage, ClaudeAgentOptions, ResultMessage, TextBlock, query
from loguru import logger

ALLOWED_MODELS = ("sonnet", "opus", "haiku")


class ReasonerTimeout(TimeoutError):
    """Raised when a Claude run exceeds its timeout."""


@dataclass
class ReasonerResult:
    text: str
    session_id: str = ""
    cost_usd: float = 0.0
    duration_ms: int = 0


class Reasoner(Protocol):
    async def invoke(
        self,
        prompt: str,
        *,
        no_session_persistence: bool = False,
        max_turns: int | None = None,
        timeout_ms: int | None = None,
        append_system_prompt: str | None = None,
        model: str | None = None,
    ) -> ReasonerResult: ...


def format_duration(ms: int) -> str:
    """Render a timeout as '1h 30m', '10m' or '45s'."""
    hours, rem = divmod(ms // 1000, 3600)
    minutes, seconds = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds and not hours:
        parts.append(f"{seconds}s")
    return " ".join(parts) or f"{ms}ms"


class ClaudeCodeProvider:
    """Run a prompt through the Claude Code CLI and return its final text."""

    def __init__(self, default_model: str | None = None, cwd: Path | None = None):
        if default_model is not None and default_model not in ALLOWED_MODELS:
            logger.warning(
                "Invalid model '{}' in config, ignoring (allowed: {})",
                default_model,
                ", ".join(ALLOWED_MODELS),
            )
            default_model = None
        self.default_model = default_model
        self.cwd = cwd

    def _build_options(
        self,
        *,
        no_session_persistence: bool,
        max_turns: int | None,
        append_system_prompt: str | None,
        model: str | None,
    ) -> ClaudeAgentOptions:
        extra_args: dict[str, str | None] = {}
        if no_session_persistence:
            extra_args["no-session-persistence"] = None

        options = ClaudeAgentOptions(
            model=model or self.default_model,
            max_turns=max_turns,
            permission_mode="bypassPermissions",
            cwd=self.cwd,
            extra_args=extra_args,
        )
        if append_system_prompt:
            options.system_prompt = {"type": "preset", "preset": "claude_code", "append": append_system_prompt}
        return options

    async def invoke(
        self,
        prompt: str,
        *,
        no_session_persistence: bool = False,
        max_turns: int | None = None,
        timeout_ms: int | None = None,
        append_system_prompt: str | None = None,
        model: str | None = None,
    ) -> ReasonerResult:
        options = self._build_options(
            no_session_persistence=no_session_persistence,
            max_turns=max_turns,
            append_system_prompt=append_system_prompt,
            model=model,
        )
        logger.debug(
            "Claude invoked: prompt={} chars, append_system_prompt={}, timeout_ms={}",
            len(prompt),
            "yes" if append_system_prompt else "no",
            timeout_ms,
        )

        if not timeout_ms:
            return await self._run_query(prompt, options)
        try:
            return await asyncio.wait_for(self._run_query(prompt, options), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise ReasonerTimeout(f"Claude timed out after {format_duration(timeout_ms)}") from None

    async def _run_query(self, prompt: str, options: ClaudeAgentOptions) -> ReasonerResult:
        content_parts: list[str] = []
        result: ResultMessage | None = None

        async for message in query(prompt=prompt, options=options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock) and block.text:
                        content_parts.append(block.text)
            elif isinstance(message, ResultMessage):
                result = message

        if result is None:
            return ReasonerResult(text="".join(content_parts).strip())

        if result.is_error:
            raise RuntimeError(f"Claude returned an error: {result.result or result.subtype}")

        text = result.result if isinstance(result.result, str) and result.result else "".join(content_parts).strip()
        logger.debug("Claude completed in {}ms, {} chars", result.duration_ms, len(text))
        return ReasonerResult(
            text=text,
            session_id=result.session_id or "",
            cost_usd=float(result.total_cost_usd or 0.0),
            duration_ms=int(result.duration_ms or 0),
        )
