"""Telegram delivery engine.

Sends text to a chat through the Bot API ``sendMessage`` endpoint with a
bounded retry policy:

- 2xx: delivered.
- 400 while Markdown was requested: the parse mode is dropped once and the
  message is re-sent as plain text straight away.
- 5xx or a transport error: linear backoff (``attempt`` seconds), then retry.
- any other 4xx: give up.

The policy lives in :func:`next_state` so it can be exercised without a
network; :class:`TelegramDelivery` drives it against an injected transport.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Protocol

import httpx
from loguru import logger

from muavin.channels.markdown import sanitize, split_message
from muavin.config.loader import ConfigurationError
from muavin.config.schema import Config
from muavin.events import EventSink, NullEventSink
from muavin.session.history import ChatHistory

TELEGRAM_API_BASE = "https://api.telegram.org"
SEND_TIMEOUT_S = 15.0
MAX_ATTEMPTS = 3
BACKOFF_STEP_S = 1.0

Format = Literal["rich", "plain"]
_PARSE_MODES: dict[str, str | None] = {"rich": "Markdown", "plain": None}


@dataclass
class TransportResponse:
    status_code: int
    body: str = ""


class TelegramTransport(Protocol):
    async def send_message(self, payload: dict[str, Any]) -> TransportResponse: ...


class HttpxTransport:
    """One short-lived HTTP client per call; connections are never reused."""

    def __init__(self, token: str, api_base: str = TELEGRAM_API_BASE, timeout_s: float = SEND_TIMEOUT_S):
        self._url = f"{api_base}/bot{token}/sendMessage"
        self._timeout_s = timeout_s

    async def send_message(self, payload: dict[str, Any]) -> TransportResponse:
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            resp = await client.post(self._url, json=payload, headers={"Connection": "close"})
        return TransportResponse(status_code=resp.status_code, body=resp.text)


class Outcome(Enum):
    DELIVERED = "delivered"
    FORMAT_REJECTED = "format_rejected"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    TRANSPORT_ERROR = "transport_error"


class State(Enum):
    ATTEMPT = "attempt"
    FORMAT_FALLBACK = "format_fallback"
    BACKOFF = "backoff"
    TERMINAL = "terminal"


def classify(status_code: int, rich: bool) -> Outcome:
    if 200 <= status_code < 300:
        return Outcome.DELIVERED
    if status_code == 400 and rich:
        return Outcome.FORMAT_REJECTED
    if status_code >= 500:
        return Outcome.SERVER_ERROR
    return Outcome.CLIENT_ERROR


def next_state(outcome: Outcome, *, attempt: int, max_attempts: int = MAX_ATTEMPTS) -> State:
    """Decide what follows an attempt. ``attempt`` is 1-based."""
    if outcome is Outcome.DELIVERED or outcome is Outcome.CLIENT_ERROR:
        return State.TERMINAL
    if attempt >= max_attempts:
        return State.TERMINAL
    if outcome is Outcome.FORMAT_REJECTED:
        return State.FORMAT_FALLBACK
    return State.BACKOFF


class TelegramDelivery:
    """Deliver text to Telegram chats. ``deliver`` never raises."""

    name = "telegram"

    def __init__(
        self,
        transport: TelegramTransport,
        *,
        events: EventSink | None = None,
        history: ChatHistory | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self._transport = transport
        self._events = events or NullEventSink()
        self._history = history
        self._sleep = sleep
        self.max_attempts = max_attempts
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        events: EventSink | None = None,
        history: ChatHistory | None = None,
    ) -> TelegramDelivery:
        token = config.bot_token
        if not token:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN not set")
        return cls(HttpxTransport(token), events=events, history=history)

    async def deliver(self, chat_id: int | str, text: str, fmt: Format | None = None) -> bool:
        """Send ``text`` to ``chat_id``; True once every chunk was accepted."""
        if fmt is not None:
            text = sanitize(text)

        for chunk in split_message(text) or [text]:
            if not await self._send_with_retry(chat_id, chunk, fmt):
                return False

        self._log_history_detached(chat_id, text)
        return True

    async def _send_with_retry(self, chat_id: int | str, text: str, fmt: Format | None) -> bool:
        parse_mode = _PARSE_MODES.get(fmt) if fmt else None
        attempt = 0
        outcome: Outcome | None = None
        state = State.ATTEMPT

        while state is not State.TERMINAL:
            if state is State.ATTEMPT:
                attempt += 1
                outcome = await self._attempt(chat_id, text, parse_mode, attempt)
                state = next_state(outcome, attempt=attempt, max_attempts=self.max_attempts)
            elif state is State.FORMAT_FALLBACK:
                logger.info("Telegram rejected {} formatting, retrying as plain text", parse_mode)
                parse_mode = None
                state = State.ATTEMPT
            elif state is State.BACKOFF:
                delay_s = attempt * BACKOFF_STEP_S
                logger.debug("Telegram backoff {}s before attempt {}", delay_s, attempt + 1)
                await self._sleep(delay_s)
                state = State.ATTEMPT

        delivered = outcome is Outcome.DELIVERED
        if delivered:
            self._events.log_event(
                level="info",
                component="relay",
                event_type="telegram_delivered",
                message=f"Delivered message to {chat_id} after {attempt} attempt(s)",
                payload={"chat_id": chat_id, "attempts": attempt, "chars": len(text)},
            )
        else:
            logger.error("Telegram delivery to {} failed after {} attempt(s)", chat_id, attempt)
            self._events.log_event(
                level="error",
                component="relay",
                event_type="telegram_delivery_failed",
                message=f"Delivery to {chat_id} failed: {outcome.value if outcome else 'unknown'}",
                payload={"chat_id": chat_id, "attempts": attempt, "outcome": outcome.value if outcome else None},
            )
        return delivered

    async def _attempt(self, chat_id: int | str, text: str, parse_mode: str | None, attempt: int) -> Outcome:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        try:
            response = await self._transport.send_message(payload)
        except Exception as e:
            logger.warning("Telegram send attempt {}/{} errored: {}", attempt, self.max_attempts, e)
            self._report_attempt(chat_id, attempt, parse_mode, Outcome.TRANSPORT_ERROR, error=str(e))
            return Outcome.TRANSPORT_ERROR

        outcome = classify(response.status_code, rich=parse_mode is not None)
        if outcome is not Outcome.DELIVERED:
            logger.warning(
                "Telegram send attempt {}/{} failed: {} {}",
                attempt,
                self.max_attempts,
                response.status_code,
                response.body[:300],
            )
        self._report_attempt(chat_id, attempt, parse_mode, outcome, status_code=response.status_code)
        return outcome

    def _report_attempt(
        self,
        chat_id: int | str,
        attempt: int,
        parse_mode: str | None,
        outcome: Outcome,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        self._events.log_event(
            level="info" if outcome is Outcome.DELIVERED else "warn",
            component="relay",
            event_type="telegram_send_attempt",
            message=f"Attempt {attempt} to {chat_id}: {outcome.value}",
            payload={
                "chat_id": chat_id,
                "attempt": attempt,
                "parse_mode": parse_mode,
                "status_code": status_code,
                "error": error,
            },
        )

    # ------------------------------------------------------------------
    # Chat history (fire-and-forget)
    # ------------------------------------------------------------------

    def _log_history_detached(self, chat_id: int | str, text: str) -> None:
        if self._history is None:
            return
        task = asyncio.create_task(self._history.log_message("assistant", text, str(chat_id)))
        self._background.add(task)
        task.add_done_callback(self._on_history_logged)

    def _on_history_logged(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to log delivered message to chat history: {}", exc)
            self._events.log_event(
                level="warn",
                component="relay",
                event_type="history_log_failed",
                message=str(exc),
            )

    async def aclose(self) -> None:
        """Wait for detached history writes before the process exits."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
