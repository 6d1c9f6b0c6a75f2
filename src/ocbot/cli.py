"""Click-based CLI for ocbot.

``ocbot`` (or ``ocbot run``) starts the bridge: the Telegram bot, the
OpenCode event stream consumer that mirrors idle sessions into forum
topics, and the sync/changelog webhook. ``ocbot status`` asks a running
bridge which sessions are bound to which topics.

Flags are grouped the way the bridge is wired: where OpenCode lives, where
mirrored sessions go, and where the webhook listens. Precedence: CLI flag >
env var > .env > default. ``apply_args_to_env()`` sets os.environ for
explicitly provided flags so Config reads the overridden values.
"""

import os
from pathlib import Path

import click

from .message_split import SOFT_LIMIT

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Telegram supergroup (and forum) chat ids carry this prefix
_SUPERGROUP_PREFIX = "-100"


def _validate_positive_float(
    _ctx: click.Context, _param: click.Parameter, value: float | None
) -> float | None:
    if value is not None and value <= 0:
        raise click.BadParameter("must be positive")
    return value


def _validate_non_negative_float(
    _ctx: click.Context, _param: click.Parameter, value: float | None
) -> float | None:
    if value is not None and value < 0:
        raise click.BadParameter("must not be negative")
    return value


def _validate_port(
    _ctx: click.Context, _param: click.Parameter, value: int | None
) -> int | None:
    if value is not None and not 0 < value < 65536:
        raise click.BadParameter("must be between 1 and 65535")
    return value


def _validate_supergroup(
    _ctx: click.Context, _param: click.Parameter, value: int | None
) -> int | None:
    """Forum topics only exist in supergroups, whose ids start with -100."""
    if value is not None and not str(value).startswith(_SUPERGROUP_PREFIX):
        raise click.BadParameter(
            f"must be a supergroup id starting with {_SUPERGROUP_PREFIX}"
        )
    return value


def _validate_message_limit(
    _ctx: click.Context, _param: click.Parameter, value: int | None
) -> int | None:
    # The role label is added on top of each chunk
    if value is not None and not 0 < value <= SOFT_LIMIT:
        raise click.BadParameter(f"must be between 1 and {SOFT_LIMIT}")
    return value


class _DefaultToRun(click.Group):
    """Click group that runs the ``run`` command when invoked without a subcommand."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        # A leading flag (other than --help/--version) belongs to ``run``
        if args and args[0] not in self.commands and not args[0].startswith("--"):
            args = ["run", *args]
        return super().parse_args(ctx, args)


@click.group(
    cls=_DefaultToRun,
    invoke_without_command=True,
    help="Telegram bot bridging chats and forum topics to OpenCode sessions.",
)
@click.version_option(package_name="ocbot", prog_name="ocbot")
@click.pass_context
def cli(ctx: click.Context) -> None:
    if ctx.invoked_subcommand is None:
        ctx.invoke(run_cmd)


# --- run command -----------------------------------------------------------

# Where the OpenCode server lives and how it is prompted
_OPENCODE_FLAGS: list[tuple[str, str]] = [
    ("opencode_host", "OPENCODE_HOST"),
    ("opencode_port", "OPENCODE_PORT"),
    ("opencode_timeout", "OPENCODE_TIMEOUT"),
    ("model", "OPENCODE_MODEL"),
]

# Session mirroring: destination group, event stream pacing, chunk size
_MIRROR_FLAGS: list[tuple[str, str]] = [
    ("sync_chat_id", "OCBOT_SYNC_CHAT_ID"),
    ("reconnect_delay", "OCBOT_RECONNECT_DELAY"),
    ("idle_defer", "OCBOT_IDLE_DEFER"),
    ("message_limit", "OCBOT_MESSAGE_LIMIT"),
]

# Inbound sync/changelog webhook and where commit cards are posted
_WEBHOOK_FLAGS: list[tuple[str, str]] = [
    ("webhook_host", "OCBOT_WEBHOOK_HOST"),
    ("webhook_port", "OCBOT_WEBHOOK_PORT"),
    ("changelog_chat_id", "OCBOT_CHANGELOG_CHAT_ID"),
    ("changelog_thread_id", "OCBOT_CHANGELOG_THREAD_ID"),
]

# Mapping: click option name → environment variable name
_FLAG_TO_ENV: list[tuple[str, str]] = [
    ("config_dir", "OCBOT_DIR"),
    ("allowed_users", "ALLOWED_USERS"),
    *_OPENCODE_FLAGS,
    *_MIRROR_FLAGS,
    *_WEBHOOK_FLAGS,
]


def apply_args_to_env(**kwargs: object) -> None:
    """Set environment variables from explicitly provided CLI flags.

    Call BEFORE Config instantiation to ensure CLI flags take precedence.
    Only sets env vars for flags that were explicitly provided (not None).
    """
    verbose = kwargs.get("verbose", False)
    log_level = kwargs.get("log_level")

    if verbose:
        os.environ["OCBOT_LOG_LEVEL"] = "DEBUG"
    elif log_level is not None:
        os.environ["OCBOT_LOG_LEVEL"] = str(log_level).upper()

    for attr, env_var in _FLAG_TO_ENV:
        value = kwargs.get(attr)
        if value is None:
            continue
        if isinstance(value, Path):
            os.environ[env_var] = str(value.expanduser().resolve())
        else:
            os.environ[env_var] = str(value)


@cli.command("run")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level.",
)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    envvar="OCBOT_DIR",
    help="Config directory (default: ~/.ocbot).",
)
@click.option(
    "--allowed-users",
    default=None,
    envvar="ALLOWED_USERS",
    help="Comma-separated Telegram user IDs.",
)
# OpenCode
@click.option(
    "--opencode-host",
    default=None,
    envvar="OPENCODE_HOST",
    help="OpenCode server host (default: 127.0.0.1).",
)
@click.option(
    "--opencode-port",
    type=int,
    default=None,
    callback=_validate_port,
    envvar="OPENCODE_PORT",
    help="OpenCode server port (default: 4096).",
)
@click.option(
    "--opencode-timeout",
    type=float,
    default=None,
    callback=_validate_positive_float,
    envvar="OPENCODE_TIMEOUT",
    help="Seconds to wait for a prompt to finish (default: 600).",
)
@click.option(
    "--model",
    default=None,
    envvar="OPENCODE_MODEL",
    help="Default model as provider/model.",
)
# Mirroring
@click.option(
    "--sync-chat-id",
    type=int,
    default=None,
    callback=_validate_supergroup,
    envvar="OCBOT_SYNC_CHAT_ID",
    help="Forum supergroup that mirrors OpenCode sessions as topics.",
)
@click.option(
    "--reconnect-delay",
    type=float,
    default=None,
    callback=_validate_positive_float,
    envvar="OCBOT_RECONNECT_DELAY",
    help="Seconds between event stream reconnects (default: 10).",
)
@click.option(
    "--idle-defer",
    type=float,
    default=None,
    callback=_validate_non_negative_float,
    envvar="OCBOT_IDLE_DEFER",
    help="Seconds to wait after an idle event before mirroring (default: 0.1).",
)
@click.option(
    "--message-limit",
    type=int,
    default=None,
    callback=_validate_message_limit,
    envvar="OCBOT_MESSAGE_LIMIT",
    help=f"Characters per posted chunk before the role label (default: {SOFT_LIMIT}).",
)
# Webhook and changelog
@click.option(
    "--webhook-host",
    default=None,
    envvar="OCBOT_WEBHOOK_HOST",
    help="Sync webhook bind address (default: 127.0.0.1).",
)
@click.option(
    "--webhook-port",
    type=int,
    default=None,
    callback=_validate_port,
    envvar="OCBOT_WEBHOOK_PORT",
    help="Sync webhook port (default: 4099).",
)
@click.option(
    "--changelog-chat-id",
    type=int,
    default=None,
    callback=_validate_supergroup,
    envvar="OCBOT_CHANGELOG_CHAT_ID",
    help="Supergroup that receives commit cards (default: disabled).",
)
@click.option(
    "--changelog-thread-id",
    type=int,
    default=None,
    envvar="OCBOT_CHANGELOG_THREAD_ID",
    help="Topic inside the changelog group.",
)
def run_cmd(**kwargs: object) -> None:
    """Start the bot, the event stream consumer and the sync webhook."""
    apply_args_to_env(**kwargs)

    from .main import run_bot

    run_bot()


# --- status command --------------------------------------------------------


@cli.command("status")
@click.option(
    "--url",
    default=None,
    help="Webhook base URL (default: from OCBOT_WEBHOOK_HOST/PORT).",
)
def status_cmd(url: str | None) -> None:
    """Show the running bridge's session/topic bindings."""
    from .status_cmd import status_main

    status_main(url)
