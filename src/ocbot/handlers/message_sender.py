"""Safe message sending helpers with MarkdownV2 fallback.

Provides utility functions for sending Telegram messages with automatic
conversion to MarkdownV2 format and fallback to plain text on failure.

Functions:
  - rate_limit_send: Rate limiter to avoid Telegram flood control
  - safe_reply: Reply with MarkdownV2, fallback to plain text
  - safe_edit: Edit message with MarkdownV2, fallback to plain text
  - safe_send: Rate-limited send with MarkdownV2, fallback to plain text
  - send_segments: Send pre-split chunks in order to a chat or topic
  - keep_typing: Refresh the typing indicator while a slow call runs
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from telegram import Bot, LinkPreviewOptions, Message
from telegram.constants import ChatAction
from telegram.error import BadRequest, RetryAfter, TelegramError

from ..markdown_v2 import convert_markdown

logger = logging.getLogger(__name__)

# Disable link previews in all messages to reduce visual noise
NO_LINK_PREVIEW = LinkPreviewOptions(is_disabled=True)

# Rate limiting: last send time per chat to avoid Telegram flood control
_last_send_time: dict[int, float] = {}
MESSAGE_SEND_INTERVAL = 1.1  # seconds between messages to same chat

# Telegram clears a chat action after ~5 s
TYPING_REFRESH_INTERVAL = 4.0


async def rate_limit_send(chat_id: int) -> None:
    """Wait if necessary to avoid Telegram flood control (max 1 msg/sec per chat)."""
    now = time.monotonic()
    if chat_id in _last_send_time:
        elapsed = now - _last_send_time[chat_id]
        if elapsed < MESSAGE_SEND_INTERVAL:
            await asyncio.sleep(MESSAGE_SEND_INTERVAL - elapsed)
    _last_send_time[chat_id] = time.monotonic()


async def safe_send(
    bot: Bot,
    chat_id: int,
    text: str,
    message_thread_id: int | None = None,
    **kwargs: Any,
) -> Message | None:
    """Rate-limited send with MarkdownV2, falling back to plain text.

    Returns the sent Message, or None when both attempts failed.
    """
    kwargs.setdefault("link_preview_options", NO_LINK_PREVIEW)
    if message_thread_id is not None:
        kwargs.setdefault("message_thread_id", message_thread_id)
    await rate_limit_send(chat_id)
    try:
        return await bot.send_message(
            chat_id=chat_id,
            text=convert_markdown(text),
            parse_mode="MarkdownV2",
            **kwargs,
        )
    except RetryAfter:
        raise
    except TelegramError:
        try:
            return await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except RetryAfter:
            raise
        except TelegramError as e:
            logger.warning("Failed to send message to %s: %s", chat_id, e)
            return None


async def send_segments(
    bot: Bot,
    chat_id: int,
    segments: list[str],
    message_thread_id: int | None = None,
) -> bool:
    """Send chunks in order. Returns False if any chunk failed to send."""
    ok = True
    for segment in segments:
        sent = await safe_send(bot, chat_id, segment, message_thread_id)
        if sent is None:
            ok = False
    return ok


async def safe_reply(message: Message, text: str, **kwargs: Any) -> Message | None:
    """Reply with MarkdownV2, falling back to plain text on failure.

    Returns None if the original message no longer exists (e.g. deleted topic).
    """
    kwargs.setdefault("link_preview_options", NO_LINK_PREVIEW)
    try:
        return await message.reply_text(
            convert_markdown(text),
            parse_mode="MarkdownV2",
            **kwargs,
        )
    except BadRequest as exc:
        if "not found" in str(exc).lower():
            logger.warning("Cannot reply: original message gone (%s)", exc)
            return None
        return await message.reply_text(text, **kwargs)
    except RetryAfter:
        raise
    except TelegramError:
        return await message.reply_text(text, **kwargs)


async def safe_edit(target: Any, text: str, **kwargs: Any) -> None:
    """Edit message with MarkdownV2, falling back to plain text on failure.

    Accepts either a CallbackQuery (edit_message_text) or a Message (edit_text).
    """
    kwargs.setdefault("link_preview_options", NO_LINK_PREVIEW)
    # Message.edit_text vs CallbackQuery.edit_message_text
    edit_fn = (
        target.edit_text if isinstance(target, Message) else target.edit_message_text
    )
    try:
        await edit_fn(
            convert_markdown(text),
            parse_mode="MarkdownV2",
            **kwargs,
        )
    except RetryAfter:
        raise
    except TelegramError:
        try:
            await edit_fn(text, **kwargs)
        except RetryAfter:
            raise
        except TelegramError as e:
            logger.warning("Failed to edit message: %s", e)


@contextlib.asynccontextmanager
async def keep_typing(
    bot: Bot, chat_id: int, message_thread_id: int | None = None
) -> AsyncIterator[None]:
    """Show "typing…" in the chat until the block exits."""

    async def _loop() -> None:
        while True:
            with contextlib.suppress(TelegramError):
                await bot.send_chat_action(
                    chat_id=chat_id,
                    action=ChatAction.TYPING,
                    message_thread_id=message_thread_id,
                )
            await asyncio.sleep(TYPING_REFRESH_INTERVAL)

    task = asyncio.create_task(_loop())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
