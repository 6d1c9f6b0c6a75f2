"""Session↔thread registry — which forum topic mirrors which session.

Maps:
  session_threads: session_id -> thread_id (forward, first binding wins)
  thread_sessions: thread_id -> session_id (reverse, kept after deletion
    so a late reply in an old topic still resolves to its session)
  chat_initiated: session ids created from the Telegram side; these are
    never mirrored back into a topic.

Thread creation is guarded by a get_thread() check right before the
create call. Everything runs on one event loop, so no locking is needed;
a multi-worker deployment would need an atomic insert-if-absent here.

Key class: SessionThreadRegistry.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class SessionThreadRegistry:
    """Bidirectional session_id <-> thread_id map plus provenance set."""

    session_threads: dict[str, int] = field(default_factory=dict)
    thread_sessions: dict[int, str] = field(default_factory=dict)
    chat_initiated: set[str] = field(default_factory=set)

    def get_thread(self, session_id: str) -> int | None:
        return self.session_threads.get(session_id)

    def get_session(self, thread_id: int) -> str | None:
        return self.thread_sessions.get(thread_id)

    def bind(self, session_id: str, thread_id: int) -> bool:
        """Bind a session to a thread. Returns False if already bound.

        The first binding wins; a later bind for the same session is a
        no-op even when it names a different thread.
        """
        existing = self.session_threads.get(session_id)
        if existing is not None:
            if existing != thread_id:
                logger.warning(
                    "Session %s already bound to thread %d, ignoring thread %d",
                    session_id,
                    existing,
                    thread_id,
                )
            return False
        self.session_threads[session_id] = thread_id
        self.thread_sessions[thread_id] = session_id
        logger.info("Bound session %s -> thread %d", session_id, thread_id)
        return True

    def unbind_session(self, session_id: str) -> int | None:
        """Drop the forward mapping only. Returns the previous thread_id."""
        thread_id = self.session_threads.pop(session_id, None)
        if thread_id is not None:
            logger.info("Unbound session %s (was thread %d)", session_id, thread_id)
        return thread_id

    def mark_chat_initiated(self, session_id: str) -> None:
        self.chat_initiated.add(session_id)

    def is_chat_initiated(self, session_id: str) -> bool:
        return session_id in self.chat_initiated

    def clear_chat_initiated(self, session_id: str) -> None:
        self.chat_initiated.discard(session_id)

    def snapshot(self) -> dict[str, int]:
        """Copy of the forward map, for diagnostics."""
        return dict(self.session_threads)
