"""Fixtures for Telegram handler tests: a handler context and update factory."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from ocbot.handlers.callback_helpers import CLIENT_KEY, SESSIONS_KEY, THREADS_KEY

BOT_USERNAME = "ocbot_bot"


@pytest.fixture
def context(mock_bot, sessions, fake_opencode, thread_sync) -> MagicMock:
    mock_bot.username = BOT_USERNAME
    ctx = MagicMock()
    ctx.bot = mock_bot
    ctx.args = []
    ctx.bot_data = {
        SESSIONS_KEY: sessions,
        CLIENT_KEY: fake_opencode,
        THREADS_KEY: thread_sync,
    }
    return ctx


@pytest.fixture
def make_update():
    """Factory: an Update whose message is an AsyncMock with reply_text."""

    def _make(
        text: str | None = "hello",
        *,
        chat_type: str = "private",
        chat_id: int = 12345,
        thread_id: int | None = None,
        user_id: int = 12345,
        caption: str | None = None,
    ) -> MagicMock:
        message = AsyncMock()
        message.text = text
        message.caption = caption
        message.chat.type = chat_type
        message.chat.id = chat_id
        message.message_thread_id = thread_id
        message.message_id = 1
        message.date = datetime.now(timezone.utc)
        message.voice = None
        message.audio = None
        message.photo = []
        message.document = None

        update = MagicMock()
        update.message = message
        update.callback_query = None
        update.effective_user.id = user_id
        update.effective_user.full_name = "Ada Lovelace"
        return update

    return _make


def replies(message: AsyncMock) -> list[str]:
    """First positional argument of every reply_text call."""
    return [c.args[0] for c in message.reply_text.call_args_list]


@pytest.fixture
def replied():
    return replies
