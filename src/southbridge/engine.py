"""Session engine: the orchestrator between transport, dispatch and storage."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from pathlib import Path
from typing import Any

from acp import PROTOCOL_VERSION

from southbridge import __version__
from southbridge.audit import AuditKind, AuditLog
from southbridge.config import DEFAULT_MODEL
from southbridge.dispatch import Approver, NotificationHook, ToolDispatcher, ToolInvocation
from southbridge.errors import TransportClosed, TransportError
from southbridge.log_utils import log_context, log_event
from southbridge.rpc import Correlator, MessageKind, OutboundSerializer
from southbridge.session_store import HistoryEntry, HistoryKind, Session, SessionStore, utc_now_iso
from southbridge.tools import ToolBackend, default_backend
from southbridge.transport import Transport

logger = logging.getLogger(__name__)

CLIENT_NAME = "southbridge"
CLIENT_CAPABILITIES = {
    "fs.readTextFile": True,
    "fs.writeTextFile": True,
    "fs.listDirectory": True,
    "terminal": True,
}


class SessionEngine:
    """Drive one agent connection and one conversation at a time.

    ``start_session`` must complete the ``initialize`` handshake before
    anything else is sent. Tool requests from the agent go through the
    ``approver`` and are answered on the same transport; the session history
    only ever records prompts and tool results that were actually delivered.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        approver: Approver,
        model: str = DEFAULT_MODEL,
        workspace_dir: Path | str | None = None,
        store: SessionStore | None = None,
        audit: AuditLog | None = None,
        backend: ToolBackend | None = None,
        auto_save: bool = True,
        on_notification: NotificationHook | None = None,
    ) -> None:
        self._transport = transport
        self._model = model
        self._workspace = Path(workspace_dir or Path.cwd()).expanduser().resolve()
        self._store = store or SessionStore()
        self._audit = audit or AuditLog()
        self._auto_save = auto_save

        self._session: Session | None = None
        self._correlator = Correlator()
        self._serializer = OutboundSerializer(transport.send)
        self._dispatcher = ToolDispatcher(
            backend=backend or default_backend(),
            approver=approver,
            send=self._serializer.enqueue,
            workspace=lambda: self._workspace,
            audit=self._audit,
            on_result=self._record_tool_result,
            on_notification=on_notification,
        )

        self._reader_task: asyncio.Task[None] | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Future[Any]] = set()
        self._initialized = False
        self._closed = asyncio.Event()

    # --- Accessors ---

    @property
    def session_id(self) -> str | None:
        return self._session.id if self._session else None

    @property
    def model(self) -> str:
        return self._model

    @property
    def workspace_dir(self) -> Path:
        return self._workspace

    @property
    def history(self) -> list[HistoryEntry]:
        return list(self._session.history) if self._session else []

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def auto_save(self) -> bool:
        return self._auto_save

    @auto_save.setter
    def auto_save(self, enabled: bool) -> None:
        self._auto_save = enabled

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    def system_prompt(self) -> str:
        return f"Current Workspace: {self._workspace}"

    def set_model(self, model: str) -> None:
        """Takes effect for sessions created after the call."""
        self._model = model

    def set_workspace_dir(self, path: Path | str) -> None:
        self._workspace = Path(path).expanduser().resolve()

    # --- Lifecycle ---

    async def start_session(self) -> Any:
        """Connect, start the background tasks and complete ``initialize``."""
        if self._reader_task is not None:
            raise RuntimeError("Session already started")
        await self._transport.connect()
        loop = asyncio.get_running_loop()
        self._reader_task = loop.create_task(self._read_loop(), name="southbridge.reader")
        self._worker_task = loop.create_task(self._dispatcher.run(), name="southbridge.dispatch")

        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": dict(CLIENT_CAPABILITIES),
            "clientInfo": {"name": CLIENT_NAME, "version": __version__},
            "workspaceDirectory": str(self._workspace),
            "model": self._model,
        }
        result = await self._call("initialize", params)
        self._initialized = True
        log_event(logger, "session.initialized", model=self._model, workspace=str(self._workspace))
        return result

    async def send_prompt(self, text: str, *, wait: bool = False) -> Any:
        """Send a user prompt, creating the agent session on first use.

        With ``wait=True`` the agent's prompt result is returned; otherwise the
        result is logged when it arrives.
        """
        if not self._initialized:
            raise RuntimeError("start_session() must complete before sending prompts")
        if self.closed:
            raise TransportClosed("Agent connection is closed")

        self._audit.record(AuditKind.PROMPT, text)
        if self._session is None:
            await self._create_session()
        assert self._session is not None

        params = {
            "sessionId": self._session.id,
            "prompt": {"role": "user", "content": [{"type": "text", "text": text}]},
        }
        with log_context(session_id=self._session.id):
            future, delivered = await self._submit("session/prompt", params)
            if delivered:
                self._session.append(HistoryKind.PROMPT, text)
                self._persist()
            if wait:
                return await future
            self._track(future, "session/prompt")
            return None

    async def resume_session(self, session_id: str) -> bool:
        """Restore a stored session wholesale; nothing is replayed to the agent."""
        session = self._store.load(session_id)
        if session is None:
            log_event(logger, "session.resume.missing", level=logging.WARNING, session_id=session_id)
            return False
        self._session = session
        self._model = session.model
        self._workspace = Path(session.workspace_dir)
        self._audit.record(AuditKind.INFO, {"resumed": session_id, "entries": len(session.history)})
        log_event(logger, "session.resumed", session_id=session_id, entries=len(session.history))
        return True

    def save(self) -> bool:
        if self._session is None:
            return False
        return self._store.save(self._session.id, self._session)

    async def wait_for_tools(self) -> None:
        """Wait until every tool request received so far has been answered."""
        if self.closed:
            return
        await self._dispatcher.wait_idle()
        await self._serializer.flush()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self) -> None:
        await self._shutdown(TransportClosed("Session closed"))
        await self._transport.close()

    async def __aenter__(self) -> "SessionEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Internals ---

    async def _create_session(self) -> None:
        session_id: str | None = None
        try:
            result = await self._call("session/new", {"cwd": str(self._workspace), "mcpServers": []})
        except TransportClosed:
            raise
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "session.new.failed", level=logging.WARNING, error=str(exc))
        else:
            if isinstance(result, dict) and isinstance(result.get("sessionId"), str) and result["sessionId"]:
                session_id = result["sessionId"]
        if session_id is None:
            session_id = f"session-{int(time.time() * 1000)}"
        now = utc_now_iso()
        self._session = Session(
            id=session_id,
            model=self._model,
            workspace_dir=str(self._workspace),
            created_at=now,
            updated_at=now,
        )
        log_event(logger, "session.created", session_id=session_id)

    async def _submit(self, method: str, params: dict[str, Any]) -> tuple[asyncio.Future[Any], bool]:
        request = self._correlator.submit(method, params)
        future = self._correlator.future_for(request.id)
        delivered = await self._serializer.enqueue(request.to_wire())
        if not delivered:
            exc_type = TransportClosed if self.closed else TransportError
            self._correlator.abandon(request.id, exc_type(f"Failed to deliver {method}"))
        return future, delivered

    async def _call(self, method: str, params: dict[str, Any]) -> Any:
        future, _ = await self._submit(method, params)
        return await future

    def _track(self, future: asyncio.Future[Any], method: str) -> None:
        self._background.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._background.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                log_event(logger, "rpc.request.failed", level=logging.WARNING, method=method, error=str(exc))
            else:
                log_event(logger, "rpc.request.completed", method=method)

        future.add_done_callback(_done)

    def _record_tool_result(self, invocation: ToolInvocation) -> None:
        if self._session is None:
            log_event(logger, "session.tool_result.unrecorded", level=logging.WARNING, method=invocation.method)
            return
        self._session.append(HistoryKind.TOOL_RESULT, invocation.history_payload())
        self._persist()

    def _persist(self) -> None:
        if self._auto_save and self._session is not None:
            self._store.save(self._session.id, self._session)

    async def _read_loop(self) -> None:
        reason: BaseException = TransportClosed("Agent stream ended")
        try:
            async for raw in self._transport.messages():
                classified = self._correlator.observe(raw)
                if classified.kind is MessageKind.PEER_REQUEST:
                    self._dispatcher.submit(classified.message)
                elif classified.kind is MessageKind.RESPONSE and classified.message.result is not None:
                    self._audit.record(AuditKind.INFO, {"id": classified.message.id, "result": classified.message.result})
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "transport.inbound.failed", level=logging.WARNING, error=str(exc))
            self._audit.record(AuditKind.ERROR, {"error": str(exc)})
            reason = TransportClosed(f"Agent stream failed: {exc}")
        log_event(logger, "transport.inbound.closed")
        await self._shutdown(reason, from_reader=True)

    async def _shutdown(self, reason: BaseException, *, from_reader: bool = False) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        abandoned = self._correlator.abandon_all(reason)
        if abandoned:
            log_event(logger, "rpc.pending.abandoned", level=logging.WARNING, count=abandoned)

        tasks = [self._worker_task]
        if not from_reader:
            tasks.append(self._reader_task)
        for task in tasks:
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._dispatcher.discard_queued()
        await self._serializer.close()
