"""OpenCode server client — thin async wrapper over the HTTP API.

Uses httpx for every call, including the long-lived ``GET /event``
server-sent-event stream. Prompt calls may run for minutes (the server
answers only when the model is done), so the default timeout is large.

Error-shaped replies (HTTP >= 400, or a 2xx body carrying ``error`` /
``info.error``) raise OpenCodeError with the serialized error body
rather than returning an empty response.

Key class: OpenCodeClient. Helpers: parse_model_id(), ModelInfo, SessionInfo.
"""

import json
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from .exchange import SessionMessage

logger = logging.getLogger(__name__)

# Connect quickly, but never time out while waiting for the next event
_STREAM_TIMEOUT = httpx.Timeout(None, connect=10.0)


class OpenCodeError(RuntimeError):
    """The OpenCode server returned an error instead of a result."""


@dataclass
class SessionInfo:
    """Summary of a server-side session."""

    id: str
    title: str = ""
    directory: str = ""
    updated: float = 0.0

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "SessionInfo":
        time_info = data.get("time")
        updated = time_info.get("updated", 0) if isinstance(time_info, dict) else 0
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title") or ""),
            directory=str(data.get("directory") or ""),
            updated=float(updated or 0),
        )


@dataclass(frozen=True)
class ModelInfo:
    """A selectable model, ``id`` formatted as ``provider/model``."""

    id: str
    name: str


def parse_model_id(model: str) -> dict[str, str]:
    """Split ``provider/model`` into the server's model selector.

    Model ids may themselves contain slashes; only the first one separates
    the provider.
    """
    provider, _, model_id = model.partition("/")
    return {"providerID": provider, "modelID": model_id}


def _error_body(data: Any) -> Any | None:
    """Return the error payload of an error-shaped response, else None."""
    if not isinstance(data, dict):
        return None
    if data.get("error"):
        return data["error"]
    info = data.get("info")
    if isinstance(info, dict) and info.get("error"):
        return info["error"]
    return None


def _decode_event(payload: str) -> dict[str, Any] | None:
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Skipping undecodable event payload: %.200s", payload)
        return None
    if not isinstance(event, dict):
        logger.warning("Skipping non-object event payload: %.200s", payload)
        return None
    return event


class OpenCodeClient:
    """Async client for a running ``opencode serve`` instance."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = await self._client.request(method, path, **kwargs)
        if resp.status_code >= 400:
            logger.warning(
                "OpenCode %s %s -> %d: %.300s", method, path, resp.status_code, resp.text
            )
            raise OpenCodeError(f"OpenCode API error {resp.status_code}: {resp.text}")
        if not resp.content:
            return None
        try:
            data = resp.json()
        except ValueError as e:
            raise OpenCodeError(f"OpenCode returned non-JSON body: {resp.text}") from e
        err = _error_body(data)
        if err is not None:
            raise OpenCodeError(f"OpenCode API error: {json.dumps(err)}")
        return data

    # --- Sessions ---

    async def create_session(self, title: str | None = None) -> SessionInfo:
        body: dict[str, Any] = {"title": title} if title else {}
        data = await self._request("POST", "/session", json=body)
        if not isinstance(data, dict) or not data.get("id"):
            raise OpenCodeError(f"Unexpected session payload: {data!r}")
        session = SessionInfo.from_api(data)
        logger.info("Created OpenCode session %s", session.id)
        return session

    async def list_sessions(self) -> list[SessionInfo]:
        """All sessions, most recently updated first."""
        data = await self._request("GET", "/session")
        if not isinstance(data, list):
            return []
        sessions = [SessionInfo.from_api(s) for s in data if isinstance(s, dict)]
        sessions.sort(key=lambda s: s.updated, reverse=True)
        return sessions

    async def get_session(self, session_id: str) -> SessionInfo:
        data = await self._request("GET", f"/session/{session_id}")
        return SessionInfo.from_api(data if isinstance(data, dict) else {})

    async def get_messages(self, session_id: str) -> list[SessionMessage]:
        data = await self._request("GET", f"/session/{session_id}/message")
        if not isinstance(data, list):
            return []
        return [SessionMessage.from_api(m) for m in data if isinstance(m, dict)]

    async def prompt(
        self,
        session_id: str,
        parts: list[dict[str, Any]],
        model: str | None = None,
    ) -> dict[str, Any]:
        """Send a prompt and wait for the assistant reply."""
        body: dict[str, Any] = {"parts": parts}
        if model:
            body["model"] = parse_model_id(model)
        data = await self._request("POST", f"/session/{session_id}/message", json=body)
        return data if isinstance(data, dict) else {}

    # --- Models ---

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request("GET", "/config/providers")
        providers = data.get("providers", []) if isinstance(data, dict) else []
        models: list[ModelInfo] = []
        for provider in providers:
            if not isinstance(provider, dict):
                continue
            provider_models = provider.get("models")
            if not isinstance(provider_models, dict):
                continue
            pid = provider.get("id", "")
            pname = provider.get("name") or pid
            for model_id in provider_models:
                models.append(ModelInfo(id=f"{pid}/{model_id}", name=f"{pname} {model_id}"))
        logger.info("Loaded %d models from OpenCode server", len(models))
        return models

    # --- Events ---

    async def subscribe_events(
        self, on_open: Callable[[], None] | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield event envelopes from the global ``/event`` SSE feed.

        on_open is called once the server has accepted the subscription,
        before any event arrives. Returns when the server closes the stream;
        transport errors propagate to the caller.
        """
        async with self._client.stream("GET", "/event", timeout=_STREAM_TIMEOUT) as resp:
            if resp.status_code >= 400:
                body = (await resp.aread()).decode("utf-8", "replace")
                raise OpenCodeError(f"Event stream error {resp.status_code}: {body}")
            if on_open is not None:
                on_open()
            data_lines: list[str] = []
            async for line in resp.aiter_lines():
                if not line:
                    if data_lines:
                        event = _decode_event("\n".join(data_lines))
                        data_lines = []
                        if event is not None:
                            yield event
                    continue
                if not line.startswith("data:"):
                    continue  # event:/id:/retry: fields and comments
                value = line[len("data:") :]
                data_lines.append(value[1:] if value.startswith(" ") else value)
            if data_lines:
                event = _decode_event("\n".join(data_lines))
                if event is not None:
                    yield event
