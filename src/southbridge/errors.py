"""Exception types raised by the session engine and its transport."""

from __future__ import annotations

from typing import Any


class SouthbridgeError(Exception):
    """Base class for engine errors."""


class TransportError(SouthbridgeError):
    """A transport operation failed (connect, read or write)."""


class TransportClosed(TransportError):
    """The agent stream ended; pending requests were abandoned."""


class MalformedMessage(SouthbridgeError):
    """An inbound payload is not a valid JSON-RPC 2.0 message."""

    def __init__(self, reason: str, raw: Any = None) -> None:
        super().__init__(reason)
        self.raw = raw
