"""Tool dispatch behind the human approval gate.

Peer requests are handled one at a time by a single worker fed from a queue,
so an operator deciding on one tool call never blocks the reader that keeps
resolving responses. Every accepted request id gets exactly one response.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from southbridge.audit import AuditKind, AuditLog
from southbridge.log_utils import log_context, log_event
from southbridge.messages import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    USER_REJECTED,
    Notification,
    Request,
    RequestId,
    Response,
)
from southbridge.tools import ToolBackend, ToolKind, match_tool, parse_tool_args, resolve_path

logger = logging.getLogger(__name__)

REJECTED_MESSAGE = "User rejected tool call"


class InvocationState(str, Enum):
    RECEIVED = "received"
    AWAITING_APPROVAL = "awaiting_approval"
    REJECTED = "rejected"
    APPROVED = "approved"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RESPONSE_SENT = "response_sent"


@dataclass
class ToolInvocation:
    request_id: RequestId
    kind: ToolKind
    method: str
    params: dict[str, Any]
    args: BaseModel | None = None
    state: InvocationState = InvocationState.RECEIVED
    result: Any = None
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.state is InvocationState.RESPONSE_SENT

    def history_payload(self) -> dict[str, Any]:
        return {
            "tool": self.kind.value,
            "method": self.method,
            "params": self.params,
            "result": self.result,
            "success": True,
        }


Approver = Callable[[ToolInvocation], Awaitable[bool]]
Sender = Callable[[dict[str, Any]], Awaitable[bool]]
ResultHook = Callable[[ToolInvocation], None]
NotificationHook = Callable[[Notification], None]


class ToolDispatcher:
    """Route tool requests through approval to a :class:`ToolBackend`."""

    def __init__(
        self,
        *,
        backend: ToolBackend,
        approver: Approver,
        send: Sender,
        workspace: Callable[[], Path],
        audit: AuditLog | None = None,
        on_result: ResultHook | None = None,
        on_notification: NotificationHook | None = None,
    ) -> None:
        self.backend = backend
        self.approver = approver
        self._send = send
        self._workspace = workspace
        self._audit = audit
        self._on_result = on_result
        self._on_notification = on_notification
        self._queue: asyncio.Queue[Request | Notification] = asyncio.Queue()

    def submit(self, message: Request | Notification) -> None:
        """Hand a peer message to the worker; never blocks the caller."""
        self._queue.put_nowait(message)

    async def run(self) -> None:
        """Worker loop; runs until cancelled."""
        while True:
            message = await self._queue.get()
            try:
                await self.handle(message)
            except Exception:  # noqa: BLE001
                logger.exception("Unhandled error dispatching %s", message.method)
            finally:
                self._queue.task_done()

    async def wait_idle(self) -> None:
        await self._queue.join()

    def discard_queued(self) -> int:
        """Drop peer messages that were never picked up (used on stream closure)."""
        dropped = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            self._queue.task_done()
            dropped += 1

    async def handle(self, message: Request | Notification) -> ToolInvocation | None:
        kind = match_tool(message.method)
        if isinstance(message, Notification):
            if kind is not None:
                log_event(logger, "tool.request.uncorrelated", level=logging.WARNING, method=message.method)
            elif self._on_notification is not None:
                self._on_notification(message)
            return None
        if kind is None:
            log_event(logger, "rpc.request.unsupported", level=logging.WARNING, id=message.id, method=message.method)
            return None

        invocation = ToolInvocation(
            request_id=message.id,
            kind=kind,
            method=message.method,
            params=message.params,
        )
        with log_context(request_id=message.id, tool=kind.value):
            await self._process(invocation)
        return invocation

    async def _process(self, invocation: ToolInvocation) -> None:
        try:
            invocation.args = parse_tool_args(invocation.kind, invocation.params)
        except ValidationError as exc:
            invocation.error = f"Invalid params: {exc.errors(include_url=False)}"
            invocation.state = InvocationState.FAILED
            log_event(logger, "tool.params.invalid", level=logging.WARNING, error=invocation.error)
            self._record(AuditKind.TOOL_ERROR, invocation)
            await self._respond(invocation, Response.failure(invocation.request_id, INVALID_PARAMS, invocation.error))
            return

        invocation.state = InvocationState.AWAITING_APPROVAL
        self._record(AuditKind.TOOL_CALL, invocation)
        if not await self._approve(invocation):
            invocation.state = InvocationState.REJECTED
            invocation.error = REJECTED_MESSAGE
            log_event(logger, "tool.approval.rejected", method=invocation.method)
            self._record(AuditKind.TOOL_ERROR, invocation)
            await self._respond(invocation, Response.failure(invocation.request_id, USER_REJECTED, REJECTED_MESSAGE))
            return

        invocation.state = InvocationState.APPROVED
        log_event(logger, "tool.approval.granted", method=invocation.method)
        invocation.state = InvocationState.EXECUTING
        try:
            result, error = await self._execute(invocation)
        except Exception as exc:  # noqa: BLE001
            result, error = None, str(exc) or exc.__class__.__name__

        if error is not None:
            invocation.state = InvocationState.FAILED
            invocation.error = error
            log_event(logger, "tool.execute.failed", level=logging.WARNING, error=error)
            self._record(AuditKind.TOOL_ERROR, invocation)
            await self._respond(invocation, Response.failure(invocation.request_id, INTERNAL_ERROR, error))
            return

        invocation.state = InvocationState.SUCCEEDED
        invocation.result = result
        delivered = await self._respond(invocation, Response.success(invocation.request_id, result))
        if delivered:
            self._record(AuditKind.TOOL_RESULT, invocation)
            if self._on_result is not None:
                self._on_result(invocation)

    async def _approve(self, invocation: ToolInvocation) -> bool:
        try:
            return bool(await self.approver(invocation))
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "tool.approval.error", level=logging.WARNING, error=str(exc))
            return False

    async def _respond(self, invocation: ToolInvocation, response: Response) -> bool:
        if invocation.done:
            log_event(logger, "tool.response.duplicate", level=logging.ERROR, id=invocation.request_id)
            return False
        invocation.state = InvocationState.RESPONSE_SENT
        delivered = await self._send(response.to_wire())
        if not delivered:
            log_event(logger, "tool.response.undelivered", level=logging.WARNING, id=invocation.request_id)
        return delivered

    async def _execute(self, invocation: ToolInvocation) -> tuple[Any, str | None]:
        args = invocation.args
        workspace = self._workspace()
        backend = self.backend

        if invocation.kind is ToolKind.WRITE_FILE:
            out = await backend.write_text_file(resolve_path(workspace, args.path), args.content)
            return {}, out.get("error")
        if invocation.kind is ToolKind.READ_FILE:
            out = await backend.read_text_file(resolve_path(workspace, args.path))
            return {"content": out.get("content")}, out.get("error")
        if invocation.kind is ToolKind.LIST_DIRECTORY:
            out = await backend.list_directory(resolve_path(workspace, args.path))
            return {"entries": out.get("entries")}, out.get("error")

        cwd = resolve_path(workspace, args.cwd) if args.cwd else workspace
        out = await backend.run_command(args.command, list(args.args), cwd, args.timeout)
        result = {
            "id": f"term_{uuid.uuid4().hex[:12]}",
            "exitCode": out.get("exitCode"),
            "stdout": out.get("stdout", ""),
            "stderr": out.get("stderr", ""),
        }
        return result, out.get("error")

    def _record(self, kind: AuditKind, invocation: ToolInvocation) -> None:
        if self._audit is None:
            return
        data: dict[str, Any] = {"tool": invocation.kind.value, "method": invocation.method, "params": invocation.params}
        if invocation.error is not None:
            data["error"] = invocation.error
        if kind is AuditKind.TOOL_RESULT:
            data["result"] = invocation.result
        self._audit.record(kind, data)
