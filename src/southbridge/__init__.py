"""ACP client session engine with a human approval gate for tool calls."""

from __future__ import annotations

__version__ = "0.1.0"

from southbridge.engine import SessionEngine  # noqa: E402
from southbridge.errors import MalformedMessage, SouthbridgeError, TransportClosed, TransportError  # noqa: E402
from southbridge.session_store import HistoryEntry, HistoryKind, Session, SessionStore  # noqa: E402

__all__ = [
    "HistoryEntry",
    "HistoryKind",
    "MalformedMessage",
    "Session",
    "SessionEngine",
    "SessionStore",
    "SouthbridgeError",
    "TransportClosed",
    "TransportError",
    "__version__",
]
