"""Slash command handlers: /start, /new, /sessions, /model, /models, /help.

/models opens the paginated model picker (see model_picker); the rest
reply with a single message.
"""

import logging

import httpx
from telegram import Update
from telegram.ext import ContextTypes

from ..opencode_client import ModelInfo, OpenCodeError
from .callback_helpers import get_client, get_sessions, is_user_allowed
from .message_sender import safe_reply
from .model_picker import send_model_menu

logger = logging.getLogger(__name__)

_BackendError = (OpenCodeError, httpx.HTTPError)

SESSIONS_SHOWN = 10

COMMANDS_HELP = (
    "/new - Start a new session\n"
    "/sessions - List recent sessions\n"
    "/model - Show or set the current model\n"
    "/models - Browse and select available models\n"
    "/help - Show help"
)

FEATURES_HELP = (
    "**Text messages** - Chat with the AI\n"
    "**Voice messages** - Transcribed, then sent as text\n"
    "**Images** - Sent for analysis with an optional caption"
)


async def _authorized(update: Update) -> bool:
    user = update.effective_user
    if user and is_user_allowed(user.id):
        return True
    if update.message:
        await safe_reply(update.message, "You are not authorized to use this bot.")
    return False


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update) or not update.message:
        return
    assert update.effective_user  # checked by _authorized
    model = get_sessions(context).get_user_model(update.effective_user.id)
    await safe_reply(
        update.message,
        "🤖 **Welcome to OCBot!**\n"
        "I connect you to the OpenCode AI assistant.\n\n"
        f"**Current model:** `{model}`\n\n"
        f"{COMMANDS_HELP}\n\n{FEATURES_HELP}\n\n"
        "Just send me a message to start chatting!",
    )


async def help_command(update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update) or not update.message:
        return
    await safe_reply(
        update.message,
        "**OCBot Help**\n\n"
        f"/start - Welcome message\n{COMMANDS_HELP}\n\n"
        f"{FEATURES_HELP}\n\n"
        "Sessions started in a terminal show up as topics in the sync group. "
        "Reply inside a topic to continue that session.\n"
        "Long responses are split into several messages.",
    )


async def new_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Create a fresh session and make it the user's current one."""
    if not await _authorized(update) or not update.message:
        return
    assert update.effective_user
    try:
        session = await get_client(context).create_session()
    except _BackendError as e:
        logger.warning("Creating session failed: %s", e)
        await safe_reply(update.message, f"❌ Error creating session: {e}")
        return
    get_sessions(context).set_user_session(update.effective_user.id, session.id)
    await safe_reply(
        update.message,
        f"✅ New session created!\n\nSession ID: `{session.id}`\n\n"
        "Send me a message to start chatting.",
    )


async def sessions_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update) or not update.message:
        return
    assert update.effective_user
    try:
        listed = await get_client(context).list_sessions()
    except _BackendError as e:
        await safe_reply(update.message, f"❌ Error listing sessions: {e}")
        return
    if not listed:
        await safe_reply(update.message, "No sessions found. Use /new to create one.")
        return

    current = get_sessions(context).get_user_session(update.effective_user.id)
    lines = []
    for i, s in enumerate(listed[:SESSIONS_SHOWN], 1):
        marker = " ← current" if s.id == current else ""
        lines.append(f"{i}. `{s.id[:8]}...` - {s.title or 'Untitled'}{marker}")
    current_label = f"`{current[:8]}...`" if current else "none"
    await safe_reply(
        update.message,
        "**Recent sessions:**\n\n" + "\n".join(lines) + f"\n\nCurrent: {current_label}",
    )


def find_model(models: list[ModelInfo], query: str) -> ModelInfo | None:
    """Exact id match first, then case-insensitive name substring."""
    for m in models:
        if m.id == query:
            return m
    lowered = query.lower()
    for m in models:
        if lowered in m.name.lower():
            return m
    return None


async def model_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/model shows the current model; /model <id or name> switches it."""
    if not await _authorized(update) or not update.message:
        return
    assert update.effective_user
    user_id = update.effective_user.id
    sessions = get_sessions(context)
    query = " ".join(context.args or []).strip()

    if not query:
        await safe_reply(
            update.message,
            f"**Current model:**\n`{sessions.get_user_model(user_id)}`\n\n"
            "Run /models to browse, or /model <model-id> to set one.",
        )
        return

    try:
        models = await get_client(context).list_models()
    except _BackendError as e:
        await safe_reply(update.message, f"❌ Error loading models: {e}")
        return
    model = find_model(models, query)
    if model is None:
        await safe_reply(
            update.message,
            f'Model "{query}" not found in the available list.\n\n'
            "Run /models to see all available models.",
        )
        return
    sessions.set_user_model(user_id, model.id)
    await safe_reply(
        update.message,
        f"**Model set to:** {model.name}\n\nID: `{model.id}`\n\n"
        "Your next message will use this model.",
    )


async def models_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _authorized(update) or not update.message:
        return
    assert update.effective_user
    try:
        models = await get_client(context).list_models()
    except _BackendError as e:
        await safe_reply(update.message, f"❌ Error loading models: {e}")
        return
    if not models:
        await safe_reply(update.message, "Unable to load models. Please try again later.")
        return
    await send_model_menu(
        update.message, get_sessions(context), update.effective_user.id, models
    )
