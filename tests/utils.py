from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

from southbridge.audit import AuditLog
from southbridge.engine import SessionEngine
from southbridge.errors import TransportError
from southbridge.session_store import SessionStore

_END = object()

Responder = Callable[[dict[str, Any]], "dict[str, Any] | None"]


class FakeTransport:
    """In-memory transport: tests feed inbound messages and inspect what was sent."""

    def __init__(self, responder: Responder | None = None, *, fail_sends: bool = False) -> None:
        self.inbound: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.responder = responder
        self.fail_sends = fail_sends
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def messages(self):
        while True:
            item = await self.inbound.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def send(self, message: dict[str, Any]) -> None:
        if self.fail_sends:
            raise TransportError("send failed")
        self.sent.append(message)
        if self.responder is not None and "method" in message and "id" in message:
            reply = self.responder(message)
            if reply is not None:
                self.feed(reply)

    async def close(self) -> None:
        self.closed = True
        self.end()

    def feed(self, message: Any) -> None:
        self.inbound.put_nowait(message)

    def end(self) -> None:
        self.inbound.put_nowait(_END)

    def methods(self) -> list[str]:
        return [m["method"] for m in self.sent if "method" in m]

    def response_for(self, request_id: Any) -> dict[str, Any] | None:
        for message in self.sent:
            if "method" not in message and message.get("id") == request_id:
                return message
        return None

    def responses_for(self, request_id: Any) -> list[dict[str, Any]]:
        return [m for m in self.sent if "method" not in m and m.get("id") == request_id]


def agent_responder(session_id: str | None = "s1", *, answer_prompts: bool = True) -> Responder:
    """Reply to the engine's own requests the way a well-behaved agent would."""

    def _reply(message: dict[str, Any]) -> dict[str, Any] | None:
        method = message["method"]
        if method == "initialize":
            result: Any = {"protocolVersion": message["params"]["protocolVersion"], "agentCapabilities": {}}
        elif method == "session/new":
            result = {"sessionId": session_id} if session_id else {}
        elif method == "session/prompt":
            if not answer_prompts:
                return None
            result = {"stopReason": "end_turn"}
        else:
            return None
        return {"jsonrpc": "2.0", "id": message["id"], "result": result}

    return _reply


async def approve_all(_invocation: Any) -> bool:
    return True


async def reject_all(_invocation: Any) -> bool:
    return False


def make_engine(
    transport: FakeTransport,
    tmp_path: Path,
    *,
    approver: Callable[[Any], Any] = approve_all,
    **kwargs: Any,
) -> SessionEngine:
    workspace = tmp_path / "ws"
    workspace.mkdir(exist_ok=True)
    kwargs.setdefault("store", SessionStore(tmp_path / "sessions"))
    kwargs.setdefault("audit", AuditLog(tmp_path / "audit.log"))
    return SessionEngine(transport, approver=approver, workspace_dir=workspace, **kwargs)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
