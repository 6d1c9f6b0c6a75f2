"""CLI `ocbot status` — show running state without a bot token.

Queries the running bridge's GET /sync/status over HTTP and prints:
  - ocbot version
  - webhook address and number of mirrored sessions
  - one line per session -> topic binding

No Config import needed: the address comes from OCBOT_WEBHOOK_HOST and
OCBOT_WEBHOOK_PORT (or --url), so TELEGRAM_BOT_TOKEN is not required.
"""

import os
import sys

import httpx


def _default_url() -> str:
    host = os.getenv("OCBOT_WEBHOOK_HOST", "127.0.0.1")
    port = os.getenv("OCBOT_WEBHOOK_PORT", "4099")
    return f"http://{host}:{port}"


def fetch_status(
    base_url: str, transport: httpx.BaseTransport | None = None
) -> dict:
    """GET /sync/status. Raises httpx.HTTPError when unreachable."""
    with httpx.Client(base_url=base_url, timeout=5.0, transport=transport) as client:
        resp = client.get("/sync/status")
        resp.raise_for_status()
        return resp.json()


def status_main(url: str | None = None) -> None:
    """Entry point for `ocbot status`."""
    from . import __version__

    base_url = url or _default_url()
    print(f"ocbot {__version__}")
    try:
        status = fetch_status(base_url)
    except httpx.HTTPError as e:
        print(f"Bridge not reachable at {base_url}: {e}")
        sys.exit(1)

    sessions = status.get("sessions", [])
    print(f"Webhook: {base_url}")
    print(f"Mirrored sessions: {status.get('activeSessions', len(sessions))}")
    if not sessions:
        return

    print()
    for entry in sessions:
        print(f"  {entry.get('sessionId', '?'):<32} -> topic {entry.get('threadId')}")
