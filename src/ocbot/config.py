"""Application configuration — reads env vars and exposes a singleton.

Loads TELEGRAM_BOT_TOKEN, ALLOWED_USERS, the OpenCode server address,
the sync supergroup and webhook settings from environment variables
(with .env support).
.env loading priority: local .env (cwd) > $OCBOT_DIR/.env (default ~/.ocbot).
The module-level `config` instance is imported by nearly every other module.

Nothing is persisted: session/thread mappings live in memory only.

Key class: Config (singleton instantiated as `config`).
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from .utils import ocbot_dir

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "opencode/minimax-m2.5-free"


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        self.config_dir = ocbot_dir()
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Load .env: local (cwd) takes priority over config_dir
        # load_dotenv default override=False means first-loaded wins
        local_env = Path(".env")
        global_env = self.config_dir / ".env"
        if local_env.is_file():
            load_dotenv(local_env)
            logger.debug("Loaded env from %s", local_env.resolve())
        if global_env.is_file():
            load_dotenv(global_env)
            logger.debug("Loaded env from %s", global_env)

        self.telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN") or ""
        if not self.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        allowed_users_str = os.getenv("ALLOWED_USERS", "")
        if not allowed_users_str:
            raise ValueError("ALLOWED_USERS environment variable is required")
        try:
            self.allowed_users: set[int] = {
                int(uid.strip()) for uid in allowed_users_str.split(",") if uid.strip()
            }
        except ValueError as e:
            raise ValueError(
                f"ALLOWED_USERS contains non-numeric value: {e}. "
                "Expected comma-separated Telegram user IDs."
            ) from e

        # Forum supergroup whose topics mirror OpenCode sessions
        self.sync_chat_id: int | None = _optional_int("OCBOT_SYNC_CHAT_ID")

        # OpenCode server
        host = os.getenv("OPENCODE_HOST", "127.0.0.1")
        port = os.getenv("OPENCODE_PORT", "4096")
        self.opencode_url = f"http://{host}:{port}"
        self.opencode_timeout = float(os.getenv("OPENCODE_TIMEOUT", "600"))
        self.default_model = os.getenv("OPENCODE_MODEL") or DEFAULT_MODEL

        # Inbound sync webhook (plugin / git hook target)
        self.webhook_host = os.getenv("OCBOT_WEBHOOK_HOST", "127.0.0.1")
        self.webhook_port = int(os.getenv("OCBOT_WEBHOOK_PORT", "4099"))

        # Event stream tuning
        self.reconnect_delay = float(os.getenv("OCBOT_RECONNECT_DELAY", "10"))
        self.idle_defer = float(os.getenv("OCBOT_IDLE_DEFER", "0.1"))

        # Soft limit per posted message (role label is added on top)
        self.message_limit = int(os.getenv("OCBOT_MESSAGE_LIMIT", "1900"))

        # Changelog destination (disabled when unset)
        self.changelog_chat_id: int | None = _optional_int("OCBOT_CHANGELOG_CHAT_ID")
        self.changelog_thread_id: int | None = _optional_int(
            "OCBOT_CHANGELOG_THREAD_ID"
        )

        # Voice transcription
        self.gemini_api_key = os.getenv("GEMINI_API_KEY", "")
        self.gemini_model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

        logger.debug(
            "Config initialized: dir=%s, token=%s..., allowed_users=%d, "
            "opencode=%s, sync_chat=%s",
            self.config_dir,
            self.telegram_bot_token[:8],
            len(self.allowed_users),
            self.opencode_url,
            self.sync_chat_id,
        )

    def is_user_allowed(self, user_id: int) -> bool:
        """Check if a user is in the allowed list."""
        return user_id in self.allowed_users


config = Config()
