"""Bridge state hub — every in-memory map the bot needs, in one object.

Holds:
  registry: session_id <-> thread_id bindings plus chat-initiated provenance.
  ledger: last mirrored exchange per session (duplicate suppression).
  user_sessions: user_id -> session_id for private-chat conversations.
  user_models: user_id -> "provider/model" preference.
  subscribed_threads: (chat_id, thread_id) of forum topics whose messages are
    forwarded to OpenCode. Topic ids are only unique within one chat.
  model_menus: paginated model picker selections (10 minute TTL).

Nothing here is persisted; a restart starts from empty maps. One
SessionManager is built in create_bot() and handed to the event stream
consumer, the thread manager, the webhook and the Telegram handlers.

Key class: SessionManager.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .config import config
from .handlers.callback_data import CB_MODEL_PAGE, CB_MODEL_PICK
from .ledger import DedupLedger
from .opencode_client import ModelInfo
from .paginator import SelectionPaginator
from .registry import SessionThreadRegistry
from .utils import truncate

logger = logging.getLogger(__name__)

# Button labels beyond this are cut with "…"
_MODEL_LABEL_LEN = 24


def _model_label(model: ModelInfo) -> str:
    return truncate(model.name, _MODEL_LABEL_LEN, "…")


def _new_model_menus() -> SelectionPaginator[ModelInfo]:
    return SelectionPaginator(CB_MODEL_PICK, CB_MODEL_PAGE, _model_label)


@dataclass
class SessionManager:
    """Process-lifetime state shared by all bridge components."""

    default_model: str = field(default_factory=lambda: config.default_model)
    registry: SessionThreadRegistry = field(default_factory=SessionThreadRegistry)
    ledger: DedupLedger = field(default_factory=DedupLedger)
    user_sessions: dict[int, str] = field(default_factory=dict)
    user_models: dict[int, str] = field(default_factory=dict)
    subscribed_threads: set[tuple[int, int]] = field(default_factory=set)
    model_menus: SelectionPaginator[ModelInfo] = field(
        default_factory=_new_model_menus, repr=False
    )

    # --- Private-chat sessions ---

    def get_user_session(self, user_id: int) -> str | None:
        return self.user_sessions.get(user_id)

    def set_user_session(self, user_id: int, session_id: str) -> None:
        """Make session_id the user's current chat session.

        Sessions created from Telegram are never mirrored into topics.
        """
        self.user_sessions[user_id] = session_id
        self.registry.mark_chat_initiated(session_id)
        logger.info("User %d now on session %s", user_id, session_id)

    # --- Model preferences ---

    def get_user_model(self, user_id: int) -> str:
        return self.user_models.get(user_id) or self.default_model

    def set_user_model(self, user_id: int, model_id: str) -> None:
        self.user_models[user_id] = model_id
        logger.info("User %d switched model to %s", user_id, model_id)

    # --- Thread subscriptions ---

    def subscribe_thread(self, chat_id: int, thread_id: int) -> None:
        self.subscribed_threads.add((chat_id, thread_id))

    def is_subscribed(self, chat_id: int, thread_id: int | None) -> bool:
        return thread_id is not None and (chat_id, thread_id) in self.subscribed_threads

    # --- Lifecycle ---

    def forget_session(self, session_id: str) -> None:
        """Clean up after the backend deleted a session.

        Drops the forward binding, the ledger entry and the chat-initiated
        mark. The thread -> session entry is kept on purpose so a reply in
        the old topic still resolves (and fails at the backend with a clear
        error).
        """
        self.registry.unbind_session(session_id)
        self.ledger.forget(session_id)
        self.registry.clear_chat_initiated(session_id)
        for user_id, sid in list(self.user_sessions.items()):
            if sid == session_id:
                del self.user_sessions[user_id]
        logger.info("Forgot deleted session %s", session_id)

    def status(self) -> dict[str, Any]:
        """Diagnostic dump served by GET /sync/status."""
        sessions = self.registry.snapshot()
        return {
            "activeSessions": len(sessions),
            "sessions": [
                {"sessionId": sid, "threadId": tid} for sid, tid in sessions.items()
            ],
        }
