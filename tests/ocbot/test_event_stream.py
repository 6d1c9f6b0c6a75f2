"""Tests for the event stream consumer: idle mirroring, deletes and reconnects."""

import httpx
import pytest
from telegram.error import TelegramError

from ocbot.event_stream import EventStreamConsumer, StreamState
from ocbot.opencode_client import OpenCodeError
from ocbot.thread_sync import ASSISTANT_LABEL, USER_LABEL


def _idle(session_id: str) -> dict:
    return {
        "type": "session.status",
        "properties": {"sessionID": session_id, "status": {"type": "idle"}},
    }


@pytest.fixture
def consumer(fake_opencode, sessions, thread_sync) -> EventStreamConsumer:
    return EventStreamConsumer(
        fake_opencode, sessions, thread_sync, reconnect_delay=0.5, idle_defer=0.0
    )


@pytest.fixture
def abc123(fake_opencode, make_message):
    fake_opencode.messages["abc123"] = [
        make_message("user", "fix the bug"),
        make_message("assistant", "fixed it in main.go"),
    ]
    return "abc123"


@pytest.mark.usefixtures("plain_markdown")
class TestIdleMirroring:
    async def test_new_session_gets_topic_and_exchange(
        self, consumer, abc123, mock_bot, sessions, sent
    ) -> None:
        await consumer.handle_event(_idle(abc123))
        await consumer.drain()

        mock_bot.create_forum_topic.assert_awaited_once()
        assert mock_bot.create_forum_topic.call_args.kwargs["name"] == "fix the bug"
        thread_id = sessions.registry.get_thread(abc123)
        assert thread_id is not None
        texts = sent(mock_bot)
        assert texts[1:] == [
            f"{USER_LABEL}\nfix the bug",
            f"{ASSISTANT_LABEL}\nfixed it in main.go",
        ]
        entry = sessions.ledger.get(abc123)
        assert entry.user_content == "fix the bug"
        assert entry.assistant_content == "fixed it in main.go"

    async def test_repeated_idle_posts_once(
        self, consumer, abc123, mock_bot, sent
    ) -> None:
        await consumer.handle_event(_idle(abc123))
        await consumer.drain()
        before = len(sent(mock_bot))

        await consumer.handle_event(_idle(abc123))
        await consumer.drain()

        assert len(sent(mock_bot)) == before
        assert mock_bot.create_forum_topic.await_count == 1

    async def test_new_exchange_reuses_topic(
        self, consumer, abc123, fake_opencode, make_message, mock_bot, sent
    ) -> None:
        await consumer.handle_event(_idle(abc123))
        await consumer.drain()
        fake_opencode.messages[abc123] += [
            make_message("user", "now add a test"),
            make_message("assistant", "Added main_test.go"),
        ]

        await consumer.handle_event(_idle(abc123))
        await consumer.drain()

        assert mock_bot.create_forum_topic.await_count == 1
        assert sent(mock_bot)[-2:] == [
            f"{USER_LABEL}\nnow add a test",
            f"{ASSISTANT_LABEL}\nAdded main_test.go",
        ]

    async def test_legacy_idle_event(self, consumer, abc123, mock_bot) -> None:
        await consumer.handle_event(
            {"type": "session.idle", "properties": {"sessionID": abc123}}
        )
        await consumer.drain()
        mock_bot.create_forum_topic.assert_awaited_once()

    async def test_string_status(self, consumer, abc123, mock_bot) -> None:
        await consumer.handle_event(
            {
                "type": "session.status",
                "properties": {"sessionID": abc123, "status": "idle"},
            }
        )
        await consumer.drain()
        mock_bot.create_forum_topic.assert_awaited_once()

    async def test_busy_status_ignored(self, consumer, abc123, mock_bot) -> None:
        await consumer.handle_event(
            {
                "type": "session.status",
                "properties": {"sessionID": abc123, "status": {"type": "busy"}},
            }
        )
        await consumer.drain()
        mock_bot.create_forum_topic.assert_not_awaited()

    async def test_chat_initiated_session_not_mirrored(
        self, consumer, abc123, mock_bot, sessions
    ) -> None:
        sessions.set_user_session(12345, abc123)
        await consumer.handle_event(_idle(abc123))
        await consumer.drain()
        mock_bot.create_forum_topic.assert_not_awaited()
        mock_bot.send_message.assert_not_awaited()
        assert sessions.ledger.get(abc123) is None

    async def test_incomplete_exchange_skipped(
        self, consumer, fake_opencode, make_message, mock_bot
    ) -> None:
        fake_opencode.messages["ses_1"] = [make_message("user", "still thinking")]
        assert await consumer.mirror_session("ses_1") is False
        mock_bot.create_forum_topic.assert_not_awaited()

    async def test_partial_post_not_recorded(
        self, consumer, abc123, mock_bot, sessions
    ) -> None:
        mock_bot.send_message.side_effect = TelegramError("chat unavailable")
        assert await consumer.mirror_session(abc123) is False
        assert sessions.registry.get_thread(abc123) is not None
        assert sessions.ledger.get(abc123) is None

    async def test_backend_failure_does_not_escape(
        self, consumer, fake_opencode, mock_bot
    ) -> None:
        async def _broken(_session_id):
            raise OpenCodeError("HTTP 500")

        fake_opencode.get_messages = _broken
        await consumer.handle_event(_idle("ses_1"))
        await consumer.drain()
        mock_bot.create_forum_topic.assert_not_awaited()

    async def test_skipped_while_reply_forwarded(
        self, consumer, thread_sync, abc123, fake_opencode, sessions
    ) -> None:
        sessions.registry.bind(abc123, 7)
        results = []
        original = fake_opencode.prompt

        async def _prompt(*args, **kwargs):
            results.append(await consumer.mirror_session(abc123))
            return await original(*args, **kwargs)

        fake_opencode.prompt = _prompt
        await thread_sync.forward_reply(7, "fix the bug")
        assert results == [False]


class TestDeletion:
    async def test_forget_keeps_reverse_mapping(self, consumer, sessions) -> None:
        sessions.registry.bind("ses_1", 7)
        sessions.ledger.record("ses_1", "q", "a")
        sessions.registry.mark_chat_initiated("ses_1")

        await consumer.handle_event(
            {"type": "session.deleted", "properties": {"info": {"id": "ses_1"}}}
        )

        assert sessions.registry.get_thread("ses_1") is None
        assert sessions.registry.get_session(7) == "ses_1"
        assert sessions.ledger.get("ses_1") is None
        assert not sessions.registry.is_chat_initiated("ses_1")


class TestMalformedEvents:
    @pytest.mark.parametrize(
        "event",
        [
            {},
            {"type": 42, "properties": {"sessionID": "ses_1"}},
            {"type": "session.status", "properties": "idle"},
            {"type": "session.idle", "properties": {}},
            {"type": "session.deleted"},
            {"type": "message.part.updated", "properties": {"sessionID": "ses_1"}},
        ],
    )
    async def test_ignored(self, consumer, mock_bot, event) -> None:
        await consumer.handle_event(event)
        await consumer.drain()
        mock_bot.create_forum_topic.assert_not_awaited()


class TestReconnect:
    async def test_reconnects_after_failure_and_end(
        self, fake_opencode, sessions, thread_sync
    ) -> None:
        sessions.registry.bind("ses_1", 7)
        fake_opencode.streams = [
            httpx.ConnectError("connection refused"),
            [{"type": "session.deleted", "properties": {"sessionID": "ses_1"}}],
        ]
        delays = []
        states = []

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)
            states.append(consumer.state)
            if len(delays) == 2:
                await consumer.stop()

        consumer = EventStreamConsumer(
            fake_opencode,
            sessions,
            thread_sync,
            reconnect_delay=0.5,
            idle_defer=0.0,
            sleep=fake_sleep,
        )
        await consumer.run()

        assert fake_opencode.subscribe_calls == 2
        assert delays == [0.5, 0.5]
        assert states == [StreamState.RECONNECTING, StreamState.RECONNECTING]
        # The event delivered after reconnecting was handled
        assert sessions.registry.get_thread("ses_1") is None

    async def test_stream_error_triggers_reconnect(
        self, fake_opencode, sessions, thread_sync
    ) -> None:
        fake_opencode.streams = [httpx.StreamClosed(), []]
        delays = []

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)
            if len(delays) == 2:
                await consumer.stop()

        consumer = EventStreamConsumer(
            fake_opencode,
            sessions,
            thread_sync,
            reconnect_delay=0.5,
            idle_defer=0.0,
            sleep=fake_sleep,
        )
        await consumer.run()

        assert fake_opencode.subscribe_calls == 2
        assert delays == [0.5, 0.5]

    async def test_connected_before_first_event(
        self, fake_opencode, sessions, thread_sync, caplog
    ) -> None:
        fake_opencode.streams = [[]]

        async def fake_sleep(delay: float) -> None:
            await consumer.stop()

        consumer = EventStreamConsumer(
            fake_opencode, sessions, thread_sync, reconnect_delay=0.5, sleep=fake_sleep
        )
        with caplog.at_level("INFO", logger="ocbot.event_stream"):
            await consumer.run()

        assert "Connected to OpenCode event stream" in caplog.text
        assert consumer.state is StreamState.RECONNECTING

    async def test_stop_before_start_is_harmless(self, consumer) -> None:
        await consumer.stop()
        assert consumer.state is StreamState.RECONNECTING
