"""Text message handling — routing plus the two prompt paths.

Every incoming message goes to one of two places:
  - topic: a forum topic in the sync group. The text is forwarded to the
    session mirrored there via ThreadSync.forward_reply, and the answer is
    posted back into the topic. Topic ids repeat across chats, so topics of
    other groups never take this path.
  - direct: a private chat, or a group message mentioning the bot. The
    text goes to the user's own session, created on demand and marked
    chat-initiated so it is never mirrored into a topic.
Anything else is ignored, as are messages sent before the bot started.

Backend failures are rendered as "❌ Error: …" replies.

Key functions: handle_text_message(), resolve_route(), prompt_direct(),
forward_to_topic().
"""

import logging
import re
from typing import Any

import httpx
from telegram import Message, Update, User
from telegram.constants import ChatType
from telegram.ext import ContextTypes

from ..changelog import post_reply_changes
from ..config import config
from ..exchange import extract_response_text
from ..message_split import split_message
from ..opencode_client import OpenCodeError
from ..thread_sync import ThreadSyncError
from .callback_helpers import (
    get_client,
    get_sessions,
    get_thread_id,
    get_threads,
    is_stale,
)
from .message_sender import keep_typing, safe_reply

logger = logging.getLogger(__name__)

_PromptError = (OpenCodeError, ThreadSyncError, httpx.HTTPError)

ROUTE_TOPIC = "topic"
ROUTE_DIRECT = "direct"

EMPTY_REPLY = "No response received. Please try again."
UNLINKED_TOPIC = (
    "⚠ This topic is not linked to an OpenCode session. "
    "Links are kept in memory only, so it may predate a bridge restart."
)


def _mention(context: ContextTypes.DEFAULT_TYPE) -> str | None:
    username = context.bot.username
    return f"@{username}" if username else None


def strip_mention(text: str, mention: str | None) -> str:
    if not mention:
        return text.strip()
    return re.sub(re.escape(mention), "", text, flags=re.IGNORECASE).strip()


def resolve_route(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str | None:
    """Where a message should go: ROUTE_TOPIC, ROUTE_DIRECT or None."""
    message = update.message
    if message is None:
        return None
    thread_id = get_thread_id(update)
    chat_id = message.chat.id
    # Topic ids repeat across chats, so the chat has to match as well
    if thread_id is not None and (
        get_sessions(context).is_subscribed(chat_id, thread_id)
        or chat_id == get_threads(context).chat_id
    ):
        return ROUTE_TOPIC
    if message.chat.type == ChatType.PRIVATE:
        return ROUTE_DIRECT
    mention = _mention(context)
    body = message.text or message.caption or ""
    if mention and mention.lower() in body.lower():
        return ROUTE_DIRECT
    return None


async def ensure_user_session(user_id: int, context: ContextTypes.DEFAULT_TYPE) -> str:
    """The user's current chat session, created when missing."""
    sessions = get_sessions(context)
    session_id = sessions.get_user_session(user_id)
    if session_id is None:
        created = await get_client(context).create_session()
        session_id = created.id
        sessions.set_user_session(user_id, session_id)
    return session_id


async def prompt_direct(
    message: Message,
    context: ContextTypes.DEFAULT_TYPE,
    user: User,
    parts: list[dict[str, Any]],
    empty_reply: str = EMPTY_REPLY,
) -> None:
    """Send parts to the user's session and reply with the answer."""
    sessions = get_sessions(context)
    try:
        session_id = await ensure_user_session(user.id, context)
        async with keep_typing(context.bot, message.chat.id, message.message_thread_id):
            response = await get_client(context).prompt(
                session_id, parts, sessions.get_user_model(user.id)
            )
    except _PromptError as e:
        logger.warning("Prompt for user %d failed: %s", user.id, e)
        await safe_reply(message, f"❌ Error: {e}")
        return

    reply = extract_response_text(response)
    if not reply.strip():
        await safe_reply(message, empty_reply)
        return
    for chunk in split_message(reply, config.message_limit):
        await safe_reply(message, chunk)
    await post_reply_changes(context.bot, user.full_name, reply)


async def forward_to_topic(
    message: Message,
    context: ContextTypes.DEFAULT_TYPE,
    user: User,
    thread_id: int,
    text: str,
) -> None:
    """Continue the mirrored session of a topic with the given text."""
    model = get_sessions(context).get_user_model(user.id)
    try:
        ok = await get_threads(context).forward_reply(thread_id, text, model)
    except _PromptError as e:
        logger.warning("Forward into topic %d failed: %s", thread_id, e)
        await safe_reply(message, f"❌ Error: {e}")
        return
    if not ok:
        await safe_reply(message, UNLINKED_TOPIC)


async def handle_text_message(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Route a text message. Called after auth validation in bot.py."""
    user = update.effective_user
    message = update.message
    assert user is not None  # guaranteed by caller
    assert message is not None and message.text  # guaranteed by caller

    if is_stale(message, context):
        logger.debug("Ignoring message %d sent before start", message.message_id)
        return

    route = resolve_route(update, context)
    if route is None:
        return

    text = strip_mention(message.text, _mention(context))
    if not text:
        return

    if route == ROUTE_TOPIC:
        thread_id = get_thread_id(update)
        assert thread_id is not None  # ROUTE_TOPIC implies a topic
        await forward_to_topic(message, context, user, thread_id, text)
    else:
        await prompt_direct(message, context, user, [{"type": "text", "text": text}])
