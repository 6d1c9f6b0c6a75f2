"""Voice message transcription via the Google Gemini REST API.

Telegram voice notes arrive as OGG/Opus. The audio is sent inline
(base64) to Gemini's generateContent endpoint with a transcribe-only
prompt, using httpx like every other outbound call.

Busy responses (429/503) are retried once on the configured model, then
once on the fallback model.

Key function: transcribe_voice(audio_bytes, mime_type) -> Transcription.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import config

logger = logging.getLogger(__name__)

_GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
_FALLBACK_MODEL = "gemini-2.5-flash"
_BUSY_STATUSES = (429, 503)
_RETRY_DELAY = 2.0

_TRANSCRIBE_PROMPT = (
    "Transcribe this audio exactly as spoken. "
    "Return only the transcription text, no explanations or formatting."
)


class VoiceError(RuntimeError):
    """Transcription is unavailable or failed."""


@dataclass
class Transcription:
    text: str
    model: str


def _payload(audio_bytes: bytes, mime_type: str) -> dict[str, Any]:
    encoded = base64.b64encode(audio_bytes).decode("ascii")
    return {
        "contents": [
            {
                "parts": [
                    {"inline_data": {"mime_type": mime_type, "data": encoded}},
                    {"text": _TRANSCRIBE_PROMPT},
                ]
            }
        ]
    }


def _candidate_text(data: Any) -> str:
    try:
        return str(data["candidates"][0]["content"]["parts"][0]["text"]).strip()
    except (KeyError, IndexError, TypeError) as e:
        logger.error("Unexpected Gemini response: %.500s", data)
        raise VoiceError("No transcription in Gemini response") from e


async def transcribe_voice(
    audio_bytes: bytes,
    mime_type: str = "audio/ogg",
    transport: httpx.AsyncBaseTransport | None = None,
) -> Transcription:
    """Transcribe audio bytes. Raises VoiceError when not configured or failed."""
    if not config.gemini_api_key:
        raise VoiceError("Voice input is not configured (GEMINI_API_KEY is unset)")

    payload = _payload(audio_bytes, mime_type)
    attempts = [config.gemini_model, config.gemini_model]
    if config.gemini_model != _FALLBACK_MODEL:
        attempts.append(_FALLBACK_MODEL)

    async with httpx.AsyncClient(timeout=30.0, transport=transport) as client:
        for i, model in enumerate(attempts):
            if i == 1:
                await asyncio.sleep(_RETRY_DELAY)
            resp = await client.post(
                f"{_GEMINI_BASE}/{model}:generateContent",
                params={"key": config.gemini_api_key},
                json=payload,
            )
            if resp.status_code not in _BUSY_STATUSES:
                break
            logger.warning("Gemini %s busy (%d)", model, resp.status_code)

    if resp.status_code != 200:
        logger.error("Gemini API error %d: %.500s", resp.status_code, resp.text)
        raise VoiceError(f"Gemini API error {resp.status_code}")

    text = _candidate_text(resp.json())
    if not text:
        raise VoiceError("Empty transcription returned")
    logger.info("Transcribed %d bytes of audio with %s", len(audio_bytes), model)
    return Transcription(text=text, model=model)
