"""Application entry point — Click CLI dispatcher and bot bootstrap.

The ``main()`` function invokes the Click command group defined in cli.py,
which dispatches to subcommands (run, status).
``run_bot()`` contains the actual bot startup logic, called by the ``run``
command after CLI flags have been applied to the environment.
"""

import logging
import os
import sys

import colorlog


class _ShortNameFilter(logging.Filter):
    """Strip 'ocbot.' and 'handlers.' prefixes, cap at 20 chars."""

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("ocbot.handlers."):
            name = name[len("ocbot.handlers.") :]
        elif name.startswith("ocbot."):
            name = name[len("ocbot.") :]
        record.short_name = name[:20]  # type: ignore[attr-defined]
        return True


def setup_logging(log_level: str) -> None:
    """Configure colored, compact logging for interactive CLI use."""
    numeric_level = getattr(logging, log_level, None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = colorlog.StreamHandler()
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s %(levelname)-8s %(short_name)-20s %(message)s",
            datefmt="%H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
    )
    handler.addFilter(_ShortNameFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    logging.getLogger("ocbot").setLevel(numeric_level)
    for name in ("httpx", "httpcore", "telegram.ext", "aiohttp.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _print_env_help(error: Exception) -> None:
    from .utils import ocbot_dir

    env_path = ocbot_dir() / ".env"
    print(f"Error: {error}\n")
    print(f"Create {env_path} with the following content:\n")
    print("  TELEGRAM_BOT_TOKEN=your_bot_token_here")
    print("  ALLOWED_USERS=your_telegram_user_id")
    print()
    print("  # Mirror OpenCode sessions into topics of a forum supergroup")
    print("  OCBOT_SYNC_CHAT_ID=-100xxxxxxxxxx")
    print("  # Where `opencode serve` listens")
    print("  OPENCODE_HOST=127.0.0.1")
    print("  OPENCODE_PORT=4096")
    print()
    print("Get your bot token from @BotFather on Telegram.")
    print("Get your user ID from @userinfobot on Telegram.")


def _log_bridge_setup(logger: logging.Logger) -> None:
    from .config import config

    logger.info("Allowed users: %s", config.allowed_users)
    logger.info(
        "OpenCode server: %s (default model %s)",
        config.opencode_url,
        config.default_model,
    )
    if config.sync_chat_id is not None:
        logger.info(
            "Mirroring sessions into %d (reconnect every %ss)",
            config.sync_chat_id,
            config.reconnect_delay,
        )
    logger.info("Sync webhook: http://%s:%d", config.webhook_host, config.webhook_port)
    logger.info("Changelog: %s", config.changelog_chat_id or "(disabled)")
    logger.info("Voice input: %s", "on" if config.gemini_api_key else "off")


def run_bot() -> None:
    """Start the bot. Called by the ``run`` Click command after env is set."""
    log_level = os.environ.get("OCBOT_LOG_LEVEL", "INFO").upper()
    setup_logging(log_level)

    try:
        from .config import config  # noqa: F401
    except ValueError as e:
        _print_env_help(e)
        sys.exit(1)

    logger = logging.getLogger(__name__)
    _log_bridge_setup(logger)

    logger.info("Starting Telegram bot...")
    from .bot import create_bot

    application = create_bot()
    application.run_polling(allowed_updates=["message", "callback_query"])


def main() -> None:
    """Main entry point — dispatches via Click CLI group."""
    from .cli import cli

    cli()


if __name__ == "__main__":
    main()
