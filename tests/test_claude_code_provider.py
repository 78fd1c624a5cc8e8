import asyncio

import pytest

from muavin.providers.claude_code_provider import (
    ClaudeCodeProvider,
    ReasonerResult,
    ReasonerTimeout,
    format_duration,
)


def test_format_duration() -> None:
    assert format_duration(600_000) == "10m"
    assert format_duration(5_400_000) == "1h 30m"
    assert format_duration(45_000) == "45s"
    assert format_duration(500) == "500ms"


def test_invalid_default_model_is_ignored() -> None:
    assert ClaudeCodeProvider(default_model="gpt-4").default_model is None
    assert ClaudeCodeProvider(default_model="opus").default_model == "opus"


def test_build_options_for_job_runs(tmp_path) -> None:
    provider = ClaudeCodeProvider(default_model="sonnet", cwd=tmp_path)

    options = provider._build_options(
        no_session_persistence=True,
        max_turns=100,
        append_system_prompt="[Memory]\n[fact] x",
        model=None,
    )

    assert options.model == "sonnet"
    assert options.max_turns == 100
    assert options.extra_args == {"no-session-persistence": None}
    assert options.system_prompt == {"type": "preset", "preset": "claude_code", "append": "[Memory]\n[fact] x"}


def test_job_model_overrides_default() -> None:
    provider = ClaudeCodeProvider(default_model="sonnet")

    options = provider._build_options(
        no_session_persistence=False, max_turns=None, append_system_prompt=None, model="haiku"
    )

    assert options.model == "haiku"
    assert options.extra_args == {}


@pytest.mark.asyncio
async def test_invoke_times_out_with_readable_message(monkeypatch) -> None:
    provider = ClaudeCodeProvider()

    async def _slow(prompt, options):
        await asyncio.sleep(5)
        return ReasonerResult(text="late")

    monkeypatch.setattr(provider, "_run_query", _slow)

    with pytest.raises(ReasonerTimeout, match="Claude timed out after"):
        await provider.invoke("hi", timeout_ms=10)


@pytest.mark.asyncio
async def test_invoke_returns_query_result(monkeypatch) -> None:
    provider = ClaudeCodeProvider()

    async def _fast(prompt, options):
        return ReasonerResult(text=f"echo: {prompt}")

    monkeypatch.setattr(provider, "_run_query", _fast)

    result = await provider.invoke("hi", timeout_ms=1_000)

    assert result.text == "echo: hi"
