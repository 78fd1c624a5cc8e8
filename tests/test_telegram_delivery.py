import pytest

from muavin.channels.telegram import (
    Outcome,
    State,
    TelegramDelivery,
    TransportResponse,
    classify,
    next_state,
)
from muavin.config.loader import ConfigurationError
from muavin.config.schema import Config
from muavin.session.history import ChatHistory


class _FakeTransport:
    """Replays a scripted list of status codes or exceptions."""

    def __init__(self, script):
        self._script = list(script)
        self.payloads: list[dict] = []

    async def send_message(self, payload):
        self.payloads.append(dict(payload))
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return TransportResponse(status_code=step, body="")


class _RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class _RecordingEvents:
    def __init__(self):
        self.events: list[dict] = []

    def log_event(self, **kwargs) -> None:
        self.events.append(kwargs)


def _delivery(script, **kwargs):
    transport = _FakeTransport(script)
    sleep = _RecordingSleep()
    delivery = TelegramDelivery(transport, sleep=sleep, **kwargs)
    return delivery, transport, sleep


def test_classify() -> None:
    assert classify(200, rich=False) is Outcome.DELIVERED
    assert classify(400, rich=True) is Outcome.FORMAT_REJECTED
    assert classify(400, rich=False) is Outcome.CLIENT_ERROR
    assert classify(502, rich=True) is Outcome.SERVER_ERROR
    assert classify(403, rich=True) is Outcome.CLIENT_ERROR


def test_next_state_never_retries_after_last_attempt() -> None:
    for outcome in Outcome:
        assert next_state(outcome, attempt=3, max_attempts=3) is State.TERMINAL
    assert next_state(Outcome.SERVER_ERROR, attempt=1) is State.BACKOFF
    assert next_state(Outcome.FORMAT_REJECTED, attempt=1) is State.FORMAT_FALLBACK


@pytest.mark.asyncio
async def test_server_errors_back_off_then_deliver() -> None:
    delivery, transport, sleep = _delivery([500, 500, 200])

    assert await delivery.deliver(42, "hello") is True
    assert len(transport.payloads) == 3
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_rich_rejection_falls_back_to_plain_once() -> None:
    delivery, transport, sleep = _delivery([400, 400])

    assert await delivery.deliver(42, "**hi**", "rich") is False
    assert len(transport.payloads) == 2
    assert transport.payloads[0]["parse_mode"] == "Markdown"
    assert "parse_mode" not in transport.payloads[1]
    assert transport.payloads[0]["text"] == "*hi*"
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_rich_rejection_then_plain_success() -> None:
    delivery, transport, _ = _delivery([400, 200])

    assert await delivery.deliver(42, "x", "rich") is True
    assert "parse_mode" not in transport.payloads[1]


@pytest.mark.asyncio
async def test_transport_errors_exhaust_attempts_without_final_sleep() -> None:
    delivery, transport, sleep = _delivery([TimeoutError(), OSError("reset"), TimeoutError()])

    assert await delivery.deliver(42, "hello") is False
    assert len(transport.payloads) == 3
    assert sleep.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_error_is_terminal() -> None:
    delivery, transport, sleep = _delivery([403])

    assert await delivery.deliver(42, "hello", "plain") is False
    assert len(transport.payloads) == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_without_format_text_is_sent_verbatim() -> None:
    delivery, transport, _ = _delivery([200])

    await delivery.deliver(42, "**raw**")

    assert transport.payloads[0] == {"chat_id": 42, "text": "**raw**"}


@pytest.mark.asyncio
async def test_attempts_and_outcome_are_reported() -> None:
    events = _RecordingEvents()
    delivery, _, _ = _delivery([500, 200], events=events)

    await delivery.deliver(42, "hello")

    types = [e["event_type"] for e in events.events]
    assert types == ["telegram_send_attempt", "telegram_send_attempt", "telegram_delivered"]
    assert all(e["component"] == "relay" for e in events.events)


@pytest.mark.asyncio
async def test_delivered_text_is_logged_to_history(tmp_path) -> None:
    history = ChatHistory(tmp_path / "history")
    delivery, _, _ = _delivery([200], history=history)

    assert await delivery.deliver(42, "**hello**", "rich") is True
    await delivery.aclose()

    messages = history.recent("42", 10)
    assert [(m.role, m.content) for m in messages] == [("assistant", "*hello*")]


@pytest.mark.asyncio
async def test_history_failure_does_not_affect_delivery() -> None:
    class _BrokenHistory:
        async def log_message(self, role, content, chat_id):
            raise OSError("disk full")

    events = _RecordingEvents()
    delivery, _, _ = _delivery([200], history=_BrokenHistory(), events=events)

    assert await delivery.deliver(42, "hello") is True
    await delivery.aclose()

    assert events.events[-1]["event_type"] == "history_log_failed"


@pytest.mark.asyncio
async def test_long_text_is_chunked_and_stops_at_first_failure() -> None:
    text = ("a" * 3000) + "\n\n" + ("b" * 3000)
    delivery, transport, _ = _delivery([200, 403])

    assert await delivery.deliver(42, text) is False
    assert [len(p["text"]) for p in transport.payloads] == [3000, 3000]


def test_from_config_requires_token(monkeypatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    with pytest.raises(ConfigurationError, match="TELEGRAM_BOT_TOKEN"):
        TelegramDelivery.from_config(Config(owner=1))


def test_from_config_reads_token_from_env(monkeypatch) -> None:
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")

    assert isinstance(TelegramDelivery.from_config(Config(owner=1)), TelegramDelivery)


@pytest.mark.asyncio
async def test_deliver_returns_bool_for_placeholder_lookalike_text() -> None:
    delivery, transport, _ = _delivery([200])

    assert await delivery.deliver(1, "x \x00CODEBLOCK1\x00", "rich") is True
    assert transport.payloads[0]["text"] == "x \x00CODEBLOCK1\x00"
