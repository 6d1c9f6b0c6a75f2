"""Tests for changelog parsing, formatting and posting."""

import pytest

from ocbot.changelog import (
    classify_commit,
    format_change_summary,
    format_commit,
    parse_file_changes,
    post_changelog,
    post_reply_changes,
    summarize,
)
from ocbot.config import config

CHANGELOG_CHAT = -100777


@pytest.fixture
def changelog_enabled(monkeypatch):
    monkeypatch.setattr(config, "changelog_chat_id", CHANGELOG_CHAT)
    monkeypatch.setattr(config, "changelog_thread_id", 5)


class TestParseFileChanges:
    def test_verbs(self) -> None:
        text = "I created `src/app.py` and edited tests/test_app.py, then deleted old.txt"
        assert parse_file_changes(text) == [
            "src/app.py",
            "tests/test_app.py",
            "old.txt",
        ]

    def test_file_label(self) -> None:
        assert parse_file_changes("File: `config.yaml`") == ["config.yaml"]

    def test_diff_block(self) -> None:
        text = "```diff\n--- a/main.go\n+++ b/main.go\n@@ -1 +1 @@\n```"
        assert parse_file_changes(text) == ["a/main.go"]

    def test_duplicates_dropped(self) -> None:
        text = "Modified app.py. Updated file app.py again."
        assert parse_file_changes(text) == ["app.py"]

    def test_nothing_mentioned(self) -> None:
        assert parse_file_changes("The tests pass now.") == []


class TestClassifyCommit:
    @pytest.mark.parametrize(
        ("message", "emoji"),
        [
            ("fix: crash on empty input", "🐛"),
            ("handle bug in parser", "🐛"),
            ("feat: voice notes", "✨"),
            ("Add changelog", "✨"),
            ("refactor event loop", "🔧"),
            ("remove dead code", "🗑"),
            ("docs: readme", "📝"),
        ],
    )
    def test_prefixes(self, message, emoji) -> None:
        assert classify_commit(message) == emoji


class TestFormatCommit:
    def test_full_payload(self) -> None:
        text = format_commit(
            {
                "hash": "abcdef1234567",
                "message": "feat: add webhook\n",
                "author": "dev",
                "branch": "develop",
                "files": ["a.py", "b.py"],
                "additions": 10,
                "deletions": 2,
            }
        )
        assert text.startswith("✨ **Git Commit** `abcdef1` on `develop`")
        assert "by dev" in text
        assert "```\nfeat: add webhook\n```" in text
        assert "**Files Changed (2)**" in text
        assert "**Changes:** +10 / -2" in text

    def test_minimal_payload(self) -> None:
        text = format_commit({"hash": "1234567890", "message": "tidy"})
        assert "on `main`" in text
        assert "by Unknown" in text
        assert "Files Changed" not in text
        assert "Changes:" not in text

    def test_long_file_list_truncated(self) -> None:
        files = [f"f{i}.py" for i in range(20)]
        text = format_commit({"hash": "1", "message": "x", "files": files})
        assert "`f14.py`" in text
        assert "`f15.py`" not in text
        assert "... and 5 more" in text


class TestSummary:
    def test_short_text_kept(self) -> None:
        assert summarize("done") == "done"

    def test_long_text_cut(self) -> None:
        out = summarize("x" * 500)
        assert out == "x" * 200 + "..."

    def test_card(self) -> None:
        card = format_change_summary("Ada", "did things", ["a.py"])
        assert "**Codebase Update**" in card
        assert "**Initiated by:** Ada" in card
        assert "`a.py`" in card

    def test_card_without_files(self) -> None:
        assert "No files detected" in format_change_summary("Ada", "s", [])


@pytest.mark.usefixtures("plain_markdown")
class TestPosting:
    async def test_disabled_without_destination(self, mock_bot) -> None:
        assert await post_changelog(mock_bot, "hello") is False
        mock_bot.send_message.assert_not_awaited()

    @pytest.mark.usefixtures("changelog_enabled")
    async def test_posts_to_destination(self, mock_bot) -> None:
        assert await post_changelog(mock_bot, "hello") is True
        kwargs = mock_bot.send_message.call_args.kwargs
        assert kwargs["chat_id"] == CHANGELOG_CHAT
        assert kwargs["message_thread_id"] == 5
        assert kwargs["text"] == "hello"

    @pytest.mark.usefixtures("changelog_enabled")
    async def test_reply_with_files(self, mock_bot, sent) -> None:
        posted = await post_reply_changes(mock_bot, "Ada", "I edited `app.py`.")
        assert posted is True
        assert "`app.py`" in sent(mock_bot)[0]

    @pytest.mark.usefixtures("changelog_enabled")
    async def test_reply_without_files(self, mock_bot) -> None:
        assert await post_reply_changes(mock_bot, "Ada", "All good.") is False
        mock_bot.send_message.assert_not_awaited()
