"""Telegram bot wiring — handlers, callback dispatch and lifecycle.

create_bot() builds one SessionManager, the OpenCode client, the topic
manager (ThreadSync), the event stream consumer and the sync webhook, and
stores them in ``application.bot_data`` for the handlers.

Lifecycle:
  - post_init: register the command menu, start the event stream consumer
    and the webhook server.
  - post_shutdown: stop both and close the HTTP client.

Key functions: create_bot(), callback_handler().
"""

import logging
from datetime import datetime, timezone

from telegram import BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from .config import config
from .event_stream import EventStreamConsumer
from .handlers.callback_data import CB_MODEL_PAGE, CB_MODEL_PICK, CB_NOOP
from .handlers.callback_helpers import (
    CLIENT_KEY,
    SESSIONS_KEY,
    STARTED_AT_KEY,
    THREADS_KEY,
    get_sessions,
    is_user_allowed,
)
from .handlers.commands import (
    help_command,
    model_command,
    models_command,
    new_command,
    sessions_command,
    start_command,
)
from .handlers.media import handle_photo_message, handle_voice_message
from .handlers.message_sender import safe_reply
from .handlers.model_picker import handle_model_callback
from .handlers.text_handler import handle_text_message
from .opencode_client import OpenCodeClient
from .session import SessionManager
from .thread_sync import ThreadSync
from .webhook import SyncWebhook

logger = logging.getLogger(__name__)

CONSUMER_KEY = "consumer"
WEBHOOK_KEY = "webhook"

BOT_COMMANDS = [
    BotCommand("start", "Welcome message"),
    BotCommand("new", "Start a new session"),
    BotCommand("sessions", "List recent sessions"),
    BotCommand("model", "Show or set the current model"),
    BotCommand("models", "Browse available models"),
    BotCommand("help", "Show help"),
]

_CB_MODEL = (CB_MODEL_PICK, CB_MODEL_PAGE)


# --- Message handlers ---


async def _allowed(update: Update) -> bool:
    user = update.effective_user
    if user and is_user_allowed(user.id):
        return True
    # Only answer strangers in private chats; stay quiet in groups
    if update.message and update.message.chat.type == "private":
        await safe_reply(update.message, "You are not authorized to use this bot.")
    return False


async def text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _allowed(update):
        return
    if not update.message or not update.message.text:
        return
    await handle_text_message(update, context)


async def voice_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _allowed(update) or not update.message:
        return
    await handle_voice_message(update, context)


async def photo_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not await _allowed(update) or not update.message:
        return
    await handle_photo_message(update, context)


# --- Callback query handler (thin dispatcher) ---


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Dispatch callback queries to dedicated handler modules."""
    query = update.callback_query
    if not query or not query.data:
        return

    user = update.effective_user
    if not user or not is_user_allowed(user.id):
        await query.answer("Not authorized")
        return

    data = query.data

    # Model picker (pick / page)
    if data.startswith(_CB_MODEL):
        await handle_model_callback(query, user.id, data, get_sessions(context))

    # No-op (page counter)
    elif data == CB_NOOP:
        await query.answer()

    else:
        logger.debug("Unknown callback data %r from user %d", data, user.id)
        await query.answer()


# --- App lifecycle ---


async def post_init(application: Application) -> None:
    try:
        await application.bot.set_my_commands(BOT_COMMANDS)
    except TelegramError:
        logger.exception("Failed to register bot commands")

    consumer: EventStreamConsumer = application.bot_data[CONSUMER_KEY]
    consumer.start()

    webhook: SyncWebhook = application.bot_data[WEBHOOK_KEY]
    try:
        await webhook.start()
    except OSError:
        logger.exception(
            "Sync webhook could not bind %s:%d, continuing without it",
            webhook.host,
            webhook.port,
        )

    if config.sync_chat_id is None:
        logger.warning("OCBOT_SYNC_CHAT_ID is unset: sessions will not be mirrored")
    logger.info("Bot started, OpenCode at %s", config.opencode_url)


async def post_shutdown(application: Application) -> None:
    consumer: EventStreamConsumer = application.bot_data[CONSUMER_KEY]
    await consumer.stop()

    webhook: SyncWebhook = application.bot_data[WEBHOOK_KEY]
    await webhook.stop()

    client: OpenCodeClient = application.bot_data[CLIENT_KEY]
    await client.close()
    logger.info("Bot stopped")


def create_bot() -> Application:
    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .concurrent_updates(True)
        .build()
    )

    sessions = SessionManager()
    client = OpenCodeClient(config.opencode_url, timeout=config.opencode_timeout)
    threads = ThreadSync(application.bot, client, sessions)
    application.bot_data.update(
        {
            SESSIONS_KEY: sessions,
            CLIENT_KEY: client,
            THREADS_KEY: threads,
            CONSUMER_KEY: EventStreamConsumer(client, sessions, threads),
            WEBHOOK_KEY: SyncWebhook(sessions, threads, application.bot),
            STARTED_AT_KEY: datetime.now(timezone.utc),
        }
    )

    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("new", new_command))
    application.add_handler(CommandHandler("sessions", sessions_command))
    application.add_handler(CommandHandler("model", model_command))
    application.add_handler(CommandHandler("models", models_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CallbackQueryHandler(callback_handler))
    application.add_handler(
        MessageHandler(filters.TEXT & ~filters.COMMAND, text_handler)
    )
    application.add_handler(
        MessageHandler(filters.VOICE | filters.AUDIO, voice_handler)
    )
    application.add_handler(
        MessageHandler(filters.PHOTO | filters.Document.IMAGE, photo_handler)
    )

    return application
