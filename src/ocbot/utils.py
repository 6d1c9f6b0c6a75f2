"""Shared utility functions used across multiple ocbot modules.

Provides:
  - ocbot_dir(): resolve config directory from OCBOT_DIR env var.
  - truncate(): shorten text for previews, titles and button labels.
"""

import os
from pathlib import Path

OCBOT_DIR_ENV = "OCBOT_DIR"


def ocbot_dir() -> Path:
    """Resolve config directory from OCBOT_DIR env var or default ~/.ocbot."""
    raw = os.environ.get(OCBOT_DIR_ENV, "")
    return Path(raw) if raw else Path.home() / ".ocbot"


def truncate(text: str, limit: int, suffix: str = "") -> str:
    """Cut text to at most ``limit`` characters, appending suffix when cut.

    The suffix counts towards the limit.
    """
    if len(text) <= limit:
        return text
    if not suffix:
        return text[:limit]
    return text[: max(0, limit - len(suffix))] + suffix
