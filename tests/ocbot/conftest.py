"""Shared fixtures for ocbot unit tests.

Provides an in-memory OpenCode fake, a mock Telegram bot that hands out
topic ids, a fresh SessionManager per test, and message factories.
"""

import itertools
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from ocbot.exchange import SessionMessage
from ocbot.handlers import message_sender
from ocbot.opencode_client import SessionInfo
from ocbot.session import SessionManager
from ocbot.thread_sync import ThreadSync

SYNC_CHAT_ID = -1001000000000


class FakeOpenCode:
    """Stands in for OpenCodeClient; every call is recorded."""

    base_url = "http://opencode.test"

    def __init__(self) -> None:
        self.messages: dict[str, list[SessionMessage]] = {}
        self.replies: list[dict[str, Any]] = []
        self.prompts: list[tuple[str, list[dict[str, Any]], str | None]] = []
        self.prompt_error: Exception | None = None
        self.streams: list[list[dict[str, Any]] | Exception] = []
        self.subscribe_calls = 0
        self._ids = itertools.count(1)

    async def get_messages(self, session_id: str) -> list[SessionMessage]:
        return list(self.messages.get(session_id, []))

    async def prompt(
        self,
        session_id: str,
        parts: list[dict[str, Any]],
        model: str | None = None,
    ) -> dict[str, Any]:
        self.prompts.append((session_id, parts, model))
        if self.prompt_error is not None:
            raise self.prompt_error
        return self.replies.pop(0) if self.replies else {"parts": []}

    async def create_session(self, title: str | None = None) -> SessionInfo:
        return SessionInfo(id=f"ses_{next(self._ids)}", title=title or "")

    async def subscribe_events(self, on_open=None):
        self.subscribe_calls += 1
        if not self.streams:
            return
        item = self.streams.pop(0)
        if isinstance(item, Exception):
            raise item
        if on_open is not None:
            on_open()
        for event in item:
            yield event


@pytest.fixture(autouse=True)
def _no_rate_limit(monkeypatch):
    monkeypatch.setattr(message_sender, "MESSAGE_SEND_INTERVAL", 0.0)
    message_sender._last_send_time.clear()
    yield
    message_sender._last_send_time.clear()


@pytest.fixture
def plain_markdown(monkeypatch):
    """Send text verbatim so tests can assert on exact content."""
    monkeypatch.setattr(message_sender, "convert_markdown", lambda text: text)


@pytest.fixture
def fake_opencode() -> FakeOpenCode:
    return FakeOpenCode()


@pytest.fixture
def mock_bot() -> AsyncMock:
    bot = AsyncMock()
    topic_ids = itertools.count(100)

    async def _create_topic(chat_id: int, name: str, **_kwargs: Any) -> MagicMock:
        topic = MagicMock()
        topic.message_thread_id = next(topic_ids)
        topic.name = name
        return topic

    bot.create_forum_topic.side_effect = _create_topic
    bot.send_message.return_value = MagicMock()
    return bot


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(default_model="test/default")


@pytest.fixture
def thread_sync(mock_bot, fake_opencode, sessions) -> ThreadSync:
    return ThreadSync(
        mock_bot, fake_opencode, sessions, chat_id=SYNC_CHAT_ID, message_limit=1900
    )


@pytest.fixture
def make_message():
    """Factory: build a SessionMessage with a single text part."""
    counter = itertools.count(1)

    def _make(role: str, text: str, *, msg_id: str | None = None) -> SessionMessage:
        return SessionMessage(
            id=msg_id or f"msg_{next(counter)}",
            role=role,
            parts=[{"type": "text", "text": text}],
        )

    return _make


def sent_texts(bot: AsyncMock) -> list[str]:
    """Texts passed to bot.send_message, in call order."""
    return [c.kwargs["text"] for c in bot.send_message.call_args_list]


@pytest.fixture
def sent():
    return sent_texts
