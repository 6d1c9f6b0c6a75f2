"""Deduplication ledger — remembers the last exchange mirrored per session.

The event feed may re-deliver an idle transition, and a re-read of an
unchanged session yields the same exchange again. The ledger suppresses
those repeats by plain string equality on both texts.

Entries are only removed on session deletion; the key space is bounded
by the sessions the backend keeps alive.

Key class: DedupLedger.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    user_content: str
    assistant_content: str


@dataclass
class DedupLedger:
    """session_id -> last successfully posted exchange."""

    entries: dict[str, LedgerEntry] = field(default_factory=dict)

    def should_post(self, session_id: str, user_text: str, assistant_text: str) -> bool:
        """False iff the same exchange was already recorded for this session."""
        last = self.entries.get(session_id)
        if last is None:
            return True
        return not (
            last.user_content == user_text
            and last.assistant_content == assistant_text
        )

    def record(self, session_id: str, user_text: str, assistant_text: str) -> None:
        self.entries[session_id] = LedgerEntry(user_text, assistant_text)

    def get(self, session_id: str) -> LedgerEntry | None:
        return self.entries.get(session_id)

    def forget(self, session_id: str) -> None:
        if self.entries.pop(session_id, None) is not None:
            logger.debug("Ledger entry dropped for session %s", session_id)
