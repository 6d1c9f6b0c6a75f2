"""Event stream consumer — mirrors idle OpenCode sessions into forum topics.

Subscribes to the OpenCode server's global ``/event`` feed and:
  1. On an idle transition (``session.status`` with status idle, or the
     older ``session.idle`` event), schedules a mirror attempt on its own
     task after a short delay so the feed keeps draining.
  2. The mirror attempt fetches the session's messages, extracts the
     latest exchange, consults the dedup ledger, finds or creates the
     session's topic, posts the exchange and records it.
  3. On ``session.deleted``, drops the forward binding, the ledger entry
     and the chat-initiated mark. The topic -> session entry stays.

Sessions created from Telegram are never mirrored, nor are sessions whose
topic reply is still being forwarded (that path posts and records itself).

The subscription runs in an unbounded reconnect loop: whenever the feed
ends or fails, the consumer waits ``reconnect_delay`` seconds and
subscribes again. The state is CONNECTED from the moment the server accepts
the subscription, even before the first event.

Key classes: EventStreamConsumer, StreamState.
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from telegram.error import TelegramError

from .config import config
from .exchange import latest_exchange
from .opencode_client import OpenCodeClient, OpenCodeError
from .session import SessionManager
from .thread_sync import ThreadSync, ThreadSyncError
from .utils import truncate

logger = logging.getLogger(__name__)

# Subscription failures that trigger a reconnect. httpx.StreamError
# subclasses RuntimeError rather than httpx.HTTPError.
_LoopError = (httpx.HTTPError, OpenCodeError, OSError, ValueError, RuntimeError)
# Per-session mirror failures: logged, never fatal to the loop
_MirrorError = (
    httpx.HTTPError,
    OpenCodeError,
    ThreadSyncError,
    TelegramError,
    OSError,
    ValueError,
)

_PREVIEW_LENGTH = 60


class StreamState(enum.Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def _session_id(props: dict[str, Any]) -> str | None:
    """Session id of an event payload, wherever the server put it."""
    for key in ("sessionID", "sessionId"):
        value = props.get(key)
        if isinstance(value, str) and value:
            return value
    for key in ("info", "session"):
        nested = props.get(key)
        if isinstance(nested, dict):
            value = nested.get("id")
            if isinstance(value, str) and value:
                return value
    return None


def _is_idle(event_type: str, props: dict[str, Any]) -> bool:
    if event_type == "session.idle":
        return True
    if event_type != "session.status":
        return False
    status = props.get("status")
    if isinstance(status, dict):
        status = status.get("type")
    return status == "idle"


class EventStreamConsumer:
    """Long-lived subscriber to the OpenCode event feed."""

    def __init__(
        self,
        client: OpenCodeClient,
        sessions: SessionManager,
        threads: ThreadSync,
        reconnect_delay: float | None = None,
        idle_defer: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.sessions = sessions
        self.threads = threads
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else config.reconnect_delay
        )
        self.idle_defer = idle_defer if idle_defer is not None else config.idle_defer
        self._sleep = sleep

        self.state = StreamState.RECONNECTING
        self._running = False
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    # --- Subscription loop ---

    async def run(self) -> None:
        """Consume the feed until stop(), reconnecting after every failure."""
        self._running = True
        logger.info("Event stream consumer started (%s)", self.client.base_url)
        while self._running:
            try:
                async for event in self.client.subscribe_events(
                    on_open=self._on_connected
                ):
                    await self.handle_event(event)
                logger.warning("OpenCode event stream ended")
            except _LoopError:
                logger.exception("OpenCode event stream failed")

            self.state = StreamState.RECONNECTING
            if not self._running:
                break
            logger.info("Reconnecting to event stream in %ss", self.reconnect_delay)
            await self._sleep(self.reconnect_delay)

        logger.info("Event stream consumer stopped")

    def _on_connected(self) -> None:
        self.state = StreamState.CONNECTED
        logger.info("Connected to OpenCode event stream")

    def start(self) -> None:
        if self._running:
            logger.warning("Event stream consumer already running")
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._pending)
        if self._task:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()

    async def drain(self) -> None:
        """Wait for every scheduled mirror attempt to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # --- Event handling ---

    async def handle_event(self, event: dict[str, Any]) -> None:
        """Classify one envelope. Never raises for a bad or unknown event."""
        event_type = event.get("type")
        props = event.get("properties")
        if not isinstance(event_type, str):
            logger.warning("Skipping event without a type: %.200r", event)
            return
        if not isinstance(props, dict):
            props = {}

        if _is_idle(event_type, props):
            session_id = _session_id(props)
            if session_id is None:
                logger.warning("Idle event without session id: %.200r", event)
                return
            self._schedule_mirror(session_id)
        elif event_type == "session.deleted":
            session_id = _session_id(props)
            if session_id is None:
                logger.warning("Delete event without session id: %.200r", event)
                return
            self.sessions.forget_session(session_id)

    def _schedule_mirror(self, session_id: str) -> None:
        if self.sessions.registry.is_chat_initiated(session_id):
            logger.debug("Session %s is chat-initiated, not mirroring", session_id)
            return
        task = asyncio.create_task(self._deferred_mirror(session_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deferred_mirror(self, session_id: str) -> None:
        await asyncio.sleep(self.idle_defer)
        try:
            await self.mirror_session(session_id)
        except _MirrorError:
            logger.exception("Mirroring session %s failed", session_id)

    async def mirror_session(self, session_id: str) -> bool:
        """Post the session's latest exchange to its topic if it is new.

        Returns True when something was posted.
        """
        # Provenance may have changed while the task was queued
        if self.sessions.registry.is_chat_initiated(session_id):
            return False
        if self.threads.is_forwarding(session_id):
            logger.debug("Reply to %s is being forwarded, skipping", session_id)
            return False

        messages = await self.client.get_messages(session_id)
        exchange = latest_exchange(messages)
        if exchange is None:
            logger.debug("Session %s has no complete exchange yet", session_id)
            return False

        user_text = exchange.user_text
        assistant_text = exchange.assistant_text
        if not user_text and not assistant_text:
            return False
        ledger = self.sessions.ledger
        if not ledger.should_post(session_id, user_text, assistant_text):
            logger.debug("Exchange for %s already mirrored", session_id)
            return False

        thread_id, existing = await self.threads.ensure_thread(session_id, user_text)
        # The forward path may have started while the topic was being created
        if not ledger.should_post(session_id, user_text, assistant_text):
            return False
        ok = await self.threads.post_exchange(thread_id, user_text, assistant_text)
        if not ok:
            logger.warning("Exchange for %s only partially posted", session_id)
            return False
        ledger.record(session_id, user_text, assistant_text)
        logger.info(
            "Mirrored %s to %s topic %d: %s",
            session_id,
            "existing" if existing else "new",
            thread_id,
            truncate(user_text, _PREVIEW_LENGTH, "..."),
        )
        return True
