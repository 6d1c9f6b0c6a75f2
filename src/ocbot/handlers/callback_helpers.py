"""Shared helpers for handler modules.

The bridge components are built once in create_bot() and stored in
``application.bot_data``; handlers reach them through these accessors
instead of module-level singletons.

Provides:
  - get_sessions / get_client / get_threads: bot_data accessors
  - get_thread_id: Extract a forum topic id from a Telegram update
  - is_user_allowed: ALLOWED_USERS check tolerant of a missing user
  - is_stale: Messages sent before the bot started are ignored
"""

from datetime import datetime, timezone

from telegram import Message, Update
from telegram.ext import ContextTypes

from ..config import config
from ..opencode_client import OpenCodeClient
from ..session import SessionManager
from ..thread_sync import ThreadSync

SESSIONS_KEY = "sessions"
CLIENT_KEY = "opencode"
THREADS_KEY = "threads"
STARTED_AT_KEY = "started_at"


def get_sessions(context: ContextTypes.DEFAULT_TYPE) -> SessionManager:
    return context.bot_data[SESSIONS_KEY]


def get_client(context: ContextTypes.DEFAULT_TYPE) -> OpenCodeClient:
    return context.bot_data[CLIENT_KEY]


def get_threads(context: ContextTypes.DEFAULT_TYPE) -> ThreadSync:
    return context.bot_data[THREADS_KEY]


def is_user_allowed(user_id: int | None) -> bool:
    return user_id is not None and config.is_user_allowed(user_id)


def get_thread_id(update: Update) -> int | None:
    """Extract thread_id from an update, returning None if not in a named topic."""
    msg = update.message or (
        update.callback_query.message if update.callback_query else None
    )
    if msg is None:
        return None
    tid = getattr(msg, "message_thread_id", None)
    # 1 is the forum's General topic
    if tid is None or tid == 1:
        return None
    return tid


def is_stale(message: Message, context: ContextTypes.DEFAULT_TYPE) -> bool:
    started_at: datetime | None = context.bot_data.get(STARTED_AT_KEY)
    if started_at is None or message.date is None:
        return False
    sent = message.date
    if sent.tzinfo is None:
        sent = sent.replace(tzinfo=timezone.utc)
    return sent < started_at
