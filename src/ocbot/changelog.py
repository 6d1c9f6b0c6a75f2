"""Changelog posts — commit cards and "files changed" summaries.

Two sources feed the changelog destination (OCBOT_CHANGELOG_CHAT_ID,
optionally a topic via OCBOT_CHANGELOG_THREAD_ID):
  - the post-commit git hook, through the webhook's POST /git-commit;
  - chat replies that mention files the assistant created or edited.

Posting is silently disabled when no destination is configured.

Key functions: parse_file_changes(), classify_commit(), format_commit(),
format_change_summary(), post_changelog().
"""

import logging
import re
from typing import Any

from telegram import Bot

from .config import config
from .handlers.message_sender import safe_send

logger = logging.getLogger(__name__)

_FILE_PATTERNS = (
    re.compile(
        r"(?:created|wrote|edited|modified|updated|deleted|removed)\s+"
        r"(?:file\s+)?[`\"]?([^\s`\"]+\.[a-zA-Z]+)[`\"]?",
        re.IGNORECASE,
    ),
    re.compile(r"(?:file|path):\s*[`\"]?([^\s`\"]+\.[a-zA-Z]+)[`\"]?", re.IGNORECASE),
    re.compile(
        r"```(?:diff|patch).*?(?:---|\+\+\+)\s+(\S+)", re.IGNORECASE | re.DOTALL
    ),
)

COMMIT_FILES_SHOWN = 15
SUMMARY_FILES_SHOWN = 10
SUMMARY_LENGTH = 200


def parse_file_changes(text: str) -> list[str]:
    """File paths the text says were created, edited or removed.

    Order of first mention is kept; duplicates and URLs are dropped.
    """
    files: list[str] = []
    for pattern in _FILE_PATTERNS:
        for match in pattern.finditer(text):
            path = match.group(1)
            if path and path not in files and not path.startswith("http"):
                files.append(path)
    return files


def classify_commit(message: str) -> str:
    """Emoji for a commit message by its conventional prefix."""
    lower = message.lower()
    if lower.startswith("fix") or "bug" in lower:
        return "🐛"
    if lower.startswith(("add", "feat")):
        return "✨"
    if lower.startswith(("update", "refactor")):
        return "🔧"
    if lower.startswith(("remove", "delete")):
        return "🗑"
    return "📝"


def _file_list(files: list[str], shown: int) -> str:
    lines = [f"`{f}`" for f in files[:shown]]
    if len(files) > shown:
        lines.append(f"... and {len(files) - shown} more")
    return "\n".join(lines)


def format_commit(payload: dict[str, Any]) -> str:
    """Render a /git-commit payload as a changelog card."""
    message = str(payload.get("message", "")).strip()
    short_hash = str(payload.get("hash", ""))[:7]
    branch = payload.get("branch") or "main"
    author = payload.get("author") or "Unknown"

    lines = [
        f"{classify_commit(message)} **Git Commit** `{short_hash}` on `{branch}`",
        f"by {author}",
        "",
        f"```\n{message}\n```",
    ]
    files = payload.get("files")
    if isinstance(files, list) and files:
        names = [str(f) for f in files]
        lines += ["", f"**Files Changed ({len(names)})**"]
        lines.append(_file_list(names, COMMIT_FILES_SHOWN))
    additions = payload.get("additions")
    deletions = payload.get("deletions")
    if additions is not None or deletions is not None:
        lines += ["", f"**Changes:** +{additions or 0} / -{deletions or 0}"]
    return "\n".join(lines)


def summarize(text: str) -> str:
    """First SUMMARY_LENGTH characters, "..." appended when cut."""
    if len(text) <= SUMMARY_LENGTH:
        return text
    return text[:SUMMARY_LENGTH] + "..."


def format_change_summary(initiator: str, summary: str, files: list[str]) -> str:
    """Render the "files changed" card posted after a chat reply."""
    listing = _file_list(files, SUMMARY_FILES_SHOWN) if files else "No files detected"
    return (
        f"📝 **Codebase Update**\n{summary}\n\n"
        f"**Initiated by:** {initiator}\n"
        f"**Files Changed:**\n{listing}"
    )


async def post_changelog(bot: Bot, text: str) -> bool:
    """Send a card to the changelog destination.

    Returns False when no destination is configured or the send failed.
    """
    chat_id = config.changelog_chat_id
    if chat_id is None:
        logger.debug("Changelog disabled, dropping post")
        return False
    sent = await safe_send(
        bot, chat_id, text, message_thread_id=config.changelog_thread_id
    )
    return sent is not None


async def post_reply_changes(bot: Bot, initiator: str, reply: str) -> bool:
    """Post a change summary when a reply mentions touched files."""
    files = parse_file_changes(reply)
    if not files:
        return False
    return await post_changelog(
        bot, format_change_summary(initiator, summarize(reply), files)
    )
