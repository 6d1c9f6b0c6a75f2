"""Voice and photo messages.

Voice notes are transcribed (see voice.py), the transcript is echoed back,
then it continues like a text message on whichever route applies.

Photos (and images sent as files) are downloaded and attached to the
prompt as ``file`` parts carrying a base64 data URL, together with the
caption. Images are only accepted on the direct route; topic forwarding
is text-only.
"""

import base64
import logging
from typing import Any

from telegram import Message, Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..voice import VoiceError, transcribe_voice
from .callback_helpers import get_thread_id, is_stale
from .message_sender import safe_reply
from .text_handler import (
    ROUTE_TOPIC,
    forward_to_topic,
    prompt_direct,
    resolve_route,
    strip_mention,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "What do you see in this image?"
EMPTY_IMAGE_REPLY = (
    "The AI model returned an empty response. This model may not support "
    "image analysis. Try a vision-capable model with /model."
)


async def _download(message: Message, file_id: str) -> bytes:
    tg_file = await message.get_bot().get_file(file_id)
    return bytes(await tg_file.download_as_bytearray())


def image_parts(
    caption: str, data: bytes, mime: str, filename: str
) -> list[dict[str, Any]]:
    """Prompt parts for one image plus its caption."""
    encoded = base64.b64encode(data).decode("ascii")
    return [
        {"type": "text", "text": caption or DEFAULT_IMAGE_PROMPT},
        {
            "type": "file",
            "mime": mime,
            "url": f"data:{mime};base64,{encoded}",
            "filename": filename,
        },
    ]


async def handle_voice_message(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Called after auth validation in bot.py."""
    user = update.effective_user
    message = update.message
    assert user is not None and message is not None  # guaranteed by caller
    voice = message.voice or message.audio
    if voice is None or is_stale(message, context):
        return
    route = resolve_route(update, context)
    if route is None:
        return

    try:
        audio = await _download(message, voice.file_id)
        result = await transcribe_voice(audio, voice.mime_type or "audio/ogg")
    except VoiceError as e:
        await safe_reply(message, f"❌ {e}")
        return
    except TelegramError as e:
        logger.warning("Downloading voice from %d failed: %s", user.id, e)
        await safe_reply(message, "❌ Could not download the voice message.")
        return

    await safe_reply(message, f"🎤 **Voice Transcription:**\n_{result.text}_")

    if route == ROUTE_TOPIC:
        thread_id = get_thread_id(update)
        assert thread_id is not None  # ROUTE_TOPIC implies a topic
        await forward_to_topic(message, context, user, thread_id, result.text)
    else:
        await prompt_direct(
            message, context, user, [{"type": "text", "text": result.text}]
        )


async def handle_photo_message(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Called after auth validation in bot.py."""
    user = update.effective_user
    message = update.message
    assert user is not None and message is not None  # guaranteed by caller
    if is_stale(message, context):
        return
    route = resolve_route(update, context)
    if route is None:
        return
    if route == ROUTE_TOPIC:
        await safe_reply(
            message, "⚠ Images can only be sent in a direct chat with the bot."
        )
        return

    if message.photo:
        photo = message.photo[-1]  # largest size
        file_id, mime, filename = photo.file_id, "image/jpeg", "photo.jpg"
    elif message.document and (message.document.mime_type or "").startswith("image/"):
        doc = message.document
        file_id = doc.file_id
        mime = doc.mime_type or "image/png"
        filename = doc.file_name or "image"
    else:
        return

    try:
        data = await _download(message, file_id)
    except TelegramError as e:
        logger.warning("Downloading image from %d failed: %s", user.id, e)
        await safe_reply(message, "❌ Could not download the image.")
        return

    mention = f"@{context.bot.username}" if context.bot.username else None
    caption = strip_mention(message.caption or "", mention)
    await prompt_direct(
        message,
        context,
        user,
        image_parts(caption, data, mime, filename),
        empty_reply=EMPTY_IMAGE_REPLY,
    )
