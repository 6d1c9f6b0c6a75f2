"""Tests for message_sender rate limiting, send-with-fallback and typing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import BadRequest, NetworkError, RetryAfter

from ocbot.handlers import message_sender
from ocbot.handlers.message_sender import (
    _last_send_time,
    keep_typing,
    rate_limit_send,
    safe_edit,
    safe_reply,
    safe_send,
    send_segments,
)


class TestRateLimitSend:
    async def test_second_call_within_interval_waits(self, monkeypatch) -> None:
        monkeypatch.setattr(message_sender, "MESSAGE_SEND_INTERVAL", 1.1)
        await rate_limit_send(123)

        with patch(
            "ocbot.handlers.message_sender.asyncio.sleep",
            new_callable=AsyncMock,
            spec=asyncio.sleep,
        ) as mock_sleep:
            await rate_limit_send(123)
            mock_sleep.assert_called_once()
            assert 0 < mock_sleep.call_args[0][0] <= 1.1

    async def test_different_chat_ids_independent(self, monkeypatch) -> None:
        monkeypatch.setattr(message_sender, "MESSAGE_SEND_INTERVAL", 1.1)
        await rate_limit_send(1)

        with patch(
            "ocbot.handlers.message_sender.asyncio.sleep",
            new_callable=AsyncMock,
            spec=asyncio.sleep,
        ) as mock_sleep:
            await rate_limit_send(2)
            mock_sleep.assert_not_called()
        assert set(_last_send_time) == {1, 2}


class TestSafeSend:
    async def test_markdown_first(self, mock_bot) -> None:
        await safe_send(mock_bot, 100, "**bold**", message_thread_id=7)
        kwargs = mock_bot.send_message.call_args.kwargs
        assert kwargs["parse_mode"] == "MarkdownV2"
        assert kwargs["message_thread_id"] == 7
        assert kwargs["chat_id"] == 100

    async def test_falls_back_to_plain_text(self, mock_bot) -> None:
        sent = MagicMock()
        mock_bot.send_message.side_effect = [BadRequest("Can't parse entities"), sent]

        result = await safe_send(mock_bot, 100, "a_b")

        assert result is sent
        second = mock_bot.send_message.call_args_list[1].kwargs
        assert second["text"] == "a_b"
        assert "parse_mode" not in second

    async def test_both_attempts_fail(self, mock_bot) -> None:
        mock_bot.send_message.side_effect = NetworkError("down")
        assert await safe_send(mock_bot, 100, "x") is None

    async def test_retry_after_propagates(self, mock_bot) -> None:
        mock_bot.send_message.side_effect = RetryAfter(5)
        with pytest.raises(RetryAfter):
            await safe_send(mock_bot, 100, "x")

    async def test_send_segments_reports_partial_failure(self, mock_bot) -> None:
        ok_msg = MagicMock()
        mock_bot.send_message.side_effect = [
            ok_msg,
            NetworkError("down"),
            NetworkError("down"),
        ]
        assert await send_segments(mock_bot, 100, ["one", "two"], 7) is False


class TestSafeReply:
    async def test_deleted_original(self) -> None:
        message = AsyncMock()
        message.reply_text.side_effect = BadRequest("Message to be replied not found")
        assert await safe_reply(message, "hi") is None
        assert message.reply_text.await_count == 1

    async def test_plain_fallback(self) -> None:
        message = AsyncMock()
        message.reply_text.side_effect = [BadRequest("Can't parse entities"), None]
        await safe_reply(message, "a_b")
        assert message.reply_text.call_args_list[1].args == ("a_b",)


class TestSafeEdit:
    async def test_callback_query_target(self) -> None:
        query = AsyncMock()
        await safe_edit(query, "done")
        query.edit_message_text.assert_awaited_once()
        assert query.edit_message_text.call_args.kwargs["parse_mode"] == "MarkdownV2"

    async def test_failure_is_logged_not_raised(self) -> None:
        query = AsyncMock()
        query.edit_message_text.side_effect = BadRequest("Message is not modified")
        await safe_edit(query, "same")
        assert query.edit_message_text.await_count == 2


class TestKeepTyping:
    async def test_sends_typing_until_exit(self, mock_bot) -> None:
        async with keep_typing(mock_bot, 100, 7):
            await asyncio.sleep(0)
        mock_bot.send_chat_action.assert_awaited()
        kwargs = mock_bot.send_chat_action.call_args.kwargs
        assert kwargs["chat_id"] == 100
        assert kwargs["message_thread_id"] == 7

    async def test_typing_errors_suppressed(self, mock_bot) -> None:
        mock_bot.send_chat_action.side_effect = NetworkError("down")
        async with keep_typing(mock_bot, 100):
            await asyncio.sleep(0)
