"""Root conftest — sets env vars BEFORE any ocbot module is imported.

The config.py module-level singleton requires TELEGRAM_BOT_TOKEN and
ALLOWED_USERS at import time, so these must be set before pytest
discovers any test that transitively imports ocbot.
"""

import os
import tempfile

# Force-set (not setdefault) to prevent real env vars from leaking into tests
os.environ["TELEGRAM_BOT_TOKEN"] = "test:0000000000:AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
os.environ["ALLOWED_USERS"] = "12345"
os.environ["OCBOT_DIR"] = tempfile.mkdtemp(prefix="ocbot-test-")
os.environ["OCBOT_SYNC_CHAT_ID"] = "-1001000000000"
for _name in (
    "OCBOT_CHANGELOG_CHAT_ID",
    "OCBOT_CHANGELOG_THREAD_ID",
    "OPENCODE_MODEL",
    "GEMINI_API_KEY",
):
    os.environ.pop(_name, None)
