"""ocbot - Telegram bot bridging chats and forum topics to OpenCode sessions.

Package entry point. Exports the version string only; all functional
modules are imported lazily by main.py to keep startup fast.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ocbot")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"
