"""Reasoning providers."""

from muavin.providers.claude_code_provider import ClaudeCodeProvider, Reasoner, ReasonerResult, ReasonerTimeout

__all__ = ["ClaudeCodeProvider", "Reasoner", "ReasonerResult", "ReasonerTimeout"]
