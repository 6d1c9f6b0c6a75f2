"""Exchange extraction — pulls the latest user/assistant pair from a session.

OpenCode returns a session's history as an ordered list of messages, each
with a role and a list of typed parts (``text``, ``file``, ``tool``, ...).
Mirroring only needs the newest complete exchange rendered as plain text.

All functions here are pure: they never mutate their input.

Key functions: latest_exchange(), extract_text(), extract_response_text().
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SessionMessage:
    """One message from an OpenCode session history."""

    id: str
    role: str  # "user" or "assistant"
    parts: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "SessionMessage":
        """Build from the server shape ``{"info": {...}, "parts": [...]}``.

        A flat ``{"id", "role", "parts"}`` dict is accepted as well.
        """
        info = data.get("info")
        if not isinstance(info, dict):
            info = data
        parts = data.get("parts")
        return cls(
            id=str(info.get("id", "")),
            role=str(info.get("role", "")),
            parts=[p for p in parts if isinstance(p, dict)]
            if isinstance(parts, list)
            else [],
        )


@dataclass
class Exchange:
    """The latest complete prompt/response pair of a session."""

    user: SessionMessage
    assistant: SessionMessage

    @property
    def user_text(self) -> str:
        return extract_text(self.user)

    @property
    def assistant_text(self) -> str:
        return extract_text(self.assistant)


def latest_exchange(messages: list[SessionMessage]) -> Exchange | None:
    """Find the most recent assistant message and the user turn before it.

    Returns None when there is no assistant message, or when no user
    message precedes it within the given window.
    """
    assistant: SessionMessage | None = None
    for msg in reversed(messages):
        if assistant is None:
            if msg.role == "assistant":
                assistant = msg
            continue
        if msg.role == "user":
            return Exchange(user=msg, assistant=assistant)
    return None


def _join_text_parts(parts: list[Any], sep: str) -> str:
    return sep.join(
        str(p.get("text") or "")
        for p in parts
        if isinstance(p, dict) and p.get("type") == "text"
    )


def extract_text(message: SessionMessage) -> str:
    """Concatenate all text parts of a message in order, trimmed."""
    return _join_text_parts(message.parts, "").strip()


def extract_response_text(response: dict[str, Any] | None) -> str:
    """Recover the reply text from a prompt response.

    The text lives either in ``parts`` or in ``content`` (a plain string or
    a list of typed parts). Text parts are joined with newlines.
    """
    if not response:
        return ""
    parts = response.get("parts")
    if isinstance(parts, list):
        return _join_text_parts(parts, "\n")
    content = response.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return _join_text_parts(content, "\n")
    return ""
