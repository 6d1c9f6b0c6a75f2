"""Thread lifecycle — forum topics that mirror OpenCode sessions.

A session started outside Telegram (terminal, editor plugin) gets its own
forum topic in the sync supergroup the first time it has something worth
mirroring. The topic name is the first 100 characters of the opening
prompt. Messages typed into a bound topic are forwarded to the session
and the reply is posted back into the same topic.

Topic creation is guarded by a per-session lock, so two idle events for
the same session racing through ensure_thread() still create one topic.

Key class: ThreadSync.
"""

import asyncio
import logging
from collections import defaultdict

from telegram import Bot

from .config import config
from .exchange import SessionMessage, extract_response_text, extract_text
from .handlers.message_sender import keep_typing, safe_send, send_segments
from .message_split import labeled_segments
from .opencode_client import OpenCodeClient
from .session import SessionManager
from .utils import truncate

logger = logging.getLogger(__name__)

TOPIC_TITLE_LIMIT = 100
DEFAULT_TOPIC_TITLE = "OpenCode Session"

USER_LABEL = "**👤 User:**"
ASSISTANT_LABEL = "**🤖 Assistant:**"


class ThreadSyncError(RuntimeError):
    """A topic could not be created or resolved."""


def topic_title(suggested: str) -> str:
    """Topic name for a session: prompt prefix, or a generic fallback."""
    title = " ".join(suggested.split())
    return truncate(title, TOPIC_TITLE_LIMIT) or DEFAULT_TOPIC_TITLE


class ThreadSync:
    """Creates topics for sessions and moves text between the two."""

    def __init__(
        self,
        bot: Bot,
        client: OpenCodeClient,
        sessions: SessionManager,
        chat_id: int | None = None,
        message_limit: int | None = None,
    ) -> None:
        self.bot = bot
        self.client = client
        self.sessions = sessions
        self.chat_id = chat_id if chat_id is not None else config.sync_chat_id
        self.message_limit = (
            message_limit if message_limit is not None else config.message_limit
        )
        self._create_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._forwarding: set[str] = set()

    def _require_chat(self) -> int:
        if self.chat_id is None:
            raise ThreadSyncError("OCBOT_SYNC_CHAT_ID is not configured")
        return self.chat_id

    async def ensure_thread(
        self, session_id: str, suggested_title: str, directory: str = ""
    ) -> tuple[int, bool]:
        """Return (thread_id, existing) for a session, creating the topic once."""
        registry = self.sessions.registry
        thread_id = registry.get_thread(session_id)
        if thread_id is not None:
            return thread_id, True

        async with self._create_locks[session_id]:
            # Re-check: another task may have created it while we waited
            thread_id = registry.get_thread(session_id)
            if thread_id is not None:
                return thread_id, True

            chat_id = self._require_chat()
            title = topic_title(suggested_title)
            topic = await self.bot.create_forum_topic(chat_id=chat_id, name=title)
            thread_id = topic.message_thread_id
            registry.bind(session_id, thread_id)
            self.sessions.subscribe_thread(chat_id, thread_id)
            logger.info(
                "Created topic %d (%r) for session %s", thread_id, title, session_id
            )

        header = f"🔗 OpenCode session `{session_id}`"
        if directory:
            header += f"\n📁 `{directory}`"
        await safe_send(self.bot, chat_id, header, message_thread_id=thread_id)
        self._create_locks.pop(session_id, None)
        return thread_id, False

    async def post_exchange(
        self, thread_id: int, user_text: str, assistant_text: str
    ) -> bool:
        """Post a labeled user/assistant pair into a topic.

        Returns False when any segment failed to send.
        """
        chat_id = self._require_chat()
        segments = labeled_segments(USER_LABEL, user_text, self.message_limit)
        segments += labeled_segments(ASSISTANT_LABEL, assistant_text, self.message_limit)
        if not segments:
            return True
        return await send_segments(self.bot, chat_id, segments, thread_id)

    def is_forwarding(self, session_id: str) -> bool:
        return session_id in self._forwarding

    async def forward_reply(
        self, thread_id: int, text: str, model: str | None = None
    ) -> bool:
        """Send a topic message to its session and post the answer back.

        Returns False when the topic is not bound to any session. Backend
        errors propagate; the registry and ledger stay untouched then.
        """
        session_id = self.sessions.registry.get_session(thread_id)
        if session_id is None:
            logger.info("Topic %d has no session, not forwarding", thread_id)
            return False

        chat_id = self._require_chat()
        self._forwarding.add(session_id)
        try:
            async with keep_typing(self.bot, chat_id, thread_id):
                response = await self.client.prompt(
                    session_id, [{"type": "text", "text": text}], model
                )
            reply = extract_response_text(response)
            segments = labeled_segments(ASSISTANT_LABEL, reply, self.message_limit)
            if segments:
                await send_segments(self.bot, chat_id, segments, thread_id)
            else:
                logger.warning("Empty reply from session %s", session_id)
            # Same normalization the idle path uses, so its next check matches
            recorded = extract_text(SessionMessage.from_api(response)) or reply.strip()
            self.sessions.ledger.record(session_id, text.strip(), recorded)
        finally:
            self._forwarding.discard(session_id)
        return True
