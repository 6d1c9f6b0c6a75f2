"""Local HTTP webhook — lets outside processes drive topic sync.

An editor plugin can bind a session to a topic and push exchanges
directly, and the post-commit git hook reports commits for the changelog.

Routes:
  POST /sync/session  {sessionId, title?, directory?} -> {threadId, existing}
  POST /sync/message  {sessionId|threadId, userContent, assistantContent}
                      -> {success}
  GET  /sync/status   -> {activeSessions, sessions}
  POST /git-commit    {hash, message, author?, branch?, files?, additions?,
                       deletions?} -> {success}
  GET  /health        -> {status}

Errors are JSON ``{"error": ...}``: 400 for invalid JSON or missing
fields, 404 when no topic can be resolved, 500 when posting fails.

Key class: SyncWebhook.
"""

import json
import logging
import time
from typing import Any

from aiohttp import web
from telegram import Bot
from telegram.error import TelegramError

from .changelog import format_commit, post_changelog
from .config import config
from .session import SessionManager
from .thread_sync import ThreadSync, ThreadSyncError

logger = logging.getLogger(__name__)

_PostError = (ThreadSyncError, TelegramError, OSError)


class BadPayload(ValueError):
    """Request body is not a JSON object or misses a required field."""


async def _read_json(request: web.Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise BadPayload(f"Invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise BadPayload("Body must be a JSON object")
    return body


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _str_field(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    return value if isinstance(value, str) else ""


class SyncWebhook:
    """aiohttp application serving the sync and changelog routes."""

    def __init__(
        self,
        sessions: SessionManager,
        threads: ThreadSync,
        bot: Bot,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        self.sessions = sessions
        self.threads = threads
        self.bot = bot
        self.host = host if host is not None else config.webhook_host
        self.port = port if port is not None else config.webhook_port
        self.app = web.Application(middlewares=[self._logging_middleware])
        self._setup_routes()
        self._runner: web.AppRunner | None = None

    @web.middleware
    async def _logging_middleware(self, request: web.Request, handler: Any) -> Any:
        start = time.monotonic()
        try:
            response = await handler(request)
        except BadPayload as e:
            response = _error(str(e), 400)
        logger.debug(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.path,
            response.status,
            (time.monotonic() - start) * 1000,
        )
        return response

    def _setup_routes(self) -> None:
        r = self.app.router
        r.add_post("/sync/session", self._handle_sync_session)
        r.add_post("/sync/message", self._handle_sync_message)
        r.add_get("/sync/status", self._handle_status)
        r.add_post("/git-commit", self._handle_git_commit)
        r.add_get("/health", self._handle_health)

    # --- Lifecycle ---

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Sync webhook listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Sync webhook stopped")

    # --- Handlers ---

    async def _handle_sync_session(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        session_id = _str_field(body, "sessionId")
        if not session_id:
            raise BadPayload("Missing required field: sessionId")
        try:
            thread_id, existing = await self.threads.ensure_thread(
                session_id,
                _str_field(body, "title"),
                _str_field(body, "directory"),
            )
        except _PostError as e:
            logger.exception("Could not create topic for session %s", session_id)
            return _error(f"Failed to create thread: {e}", 500)
        return web.json_response({"threadId": thread_id, "existing": existing})

    async def _handle_sync_message(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        session_id = _str_field(body, "sessionId")
        raw_thread = body.get("threadId")
        if not session_id and raw_thread is None:
            raise BadPayload("Missing required field: sessionId or threadId")

        thread_id: int | None = None
        if raw_thread is not None:
            try:
                thread_id = int(raw_thread)
            except (TypeError, ValueError) as e:
                raise BadPayload(f"Invalid threadId: {raw_thread!r}") from e
            if not session_id:
                session_id = self.sessions.registry.get_session(thread_id) or ""
        elif session_id:
            thread_id = self.sessions.registry.get_thread(session_id)
        if thread_id is None:
            return _error(f"No thread for session {session_id}", 404)

        user_text = _str_field(body, "userContent").strip()
        assistant_text = _str_field(body, "assistantContent").strip()
        ledger = self.sessions.ledger
        if session_id and not ledger.should_post(session_id, user_text, assistant_text):
            return web.json_response({"success": True, "duplicate": True})

        try:
            ok = await self.threads.post_exchange(thread_id, user_text, assistant_text)
        except _PostError as e:
            logger.exception("Posting to topic %d failed", thread_id)
            return _error(f"Failed to post message: {e}", 500)
        if not ok:
            return _error("Failed to post message", 500)
        if session_id:
            ledger.record(session_id, user_text, assistant_text)
        return web.json_response({"success": True})

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.sessions.status())

    async def _handle_git_commit(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        if not body.get("hash") or not body.get("message"):
            raise BadPayload("Missing required fields: hash, message")
        try:
            ok = await post_changelog(self.bot, format_commit(body))
        except TelegramError as e:
            logger.exception("Posting commit %s failed", body["hash"])
            return _error(f"Failed to post commit: {e}", 500)
        if not ok:
            return _error("Failed to post commit", 500)
        logger.info("Posted git commit %s to changelog", str(body["hash"])[:7])
        return web.json_response({"success": True})

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "activeSessions": len(self.sessions.registry.session_threads),
                "changelog": config.changelog_chat_id is not None,
            }
        )
