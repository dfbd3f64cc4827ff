"""Request correlation and the single-writer outbound queue."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from acp import RequestError

from southbridge.errors import MalformedMessage, TransportClosed
from southbridge.log_utils import log_event
from southbridge.messages import Message, Notification, Request, Response, parse_message

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    RESPONSE = "response"
    UNMATCHED_RESPONSE = "unmatched_response"
    PEER_REQUEST = "peer_request"
    MALFORMED = "malformed"


@dataclass
class PendingRequest:
    id: int
    method: str
    submitted_at: float
    future: asyncio.Future[Any]


@dataclass(frozen=True)
class Classified:
    kind: MessageKind
    message: Message | None = None
    pending: PendingRequest | None = None
    reason: str | None = None


class Correlator:
    """Allocate request ids and match inbound responses to pending requests."""

    def __init__(self) -> None:
        self._next_id = 0
        self._pending: dict[int, PendingRequest] = {}

    @property
    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    def submit(self, method: str, params: dict[str, Any] | None = None) -> Request:
        """Register a new outbound request; await ``future_for(request.id)`` for its reply."""
        request_id = self._next_id
        self._next_id += 1
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingRequest(
            id=request_id,
            method=method,
            submitted_at=time.monotonic(),
            future=future,
        )
        return Request(id=request_id, method=method, params=params or {})

    def future_for(self, request_id: int) -> asyncio.Future[Any]:
        return self._pending[request_id].future

    def observe(self, raw: Any) -> Classified:
        """Classify one inbound payload, resolving its pending request if any."""
        try:
            message = parse_message(raw)
        except MalformedMessage as exc:
            log_event(logger, "rpc.inbound.malformed", level=logging.WARNING, reason=str(exc))
            return Classified(MessageKind.MALFORMED, reason=str(exc))

        if isinstance(message, (Request, Notification)):
            return Classified(MessageKind.PEER_REQUEST, message=message)

        pending = self._pending.pop(message.id, None) if isinstance(message.id, int) else None
        if pending is None:
            log_event(
                logger,
                "rpc.response.unmatched",
                level=logging.WARNING,
                id=message.id,
            )
            return Classified(MessageKind.UNMATCHED_RESPONSE, message=message)

        self._resolve(pending, message)
        return Classified(MessageKind.RESPONSE, message=message, pending=pending)

    def abandon(self, request_id: int, exc: BaseException | None = None) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is not None and not pending.future.done():
            pending.future.set_exception(exc or TransportClosed(f"{pending.method} abandoned"))

    def abandon_all(self, exc: BaseException | None = None) -> int:
        """Drop every pending request; returns how many were abandoned."""
        abandoned = list(self._pending)
        for request_id in abandoned:
            self.abandon(request_id, exc)
        return len(abandoned)

    @staticmethod
    def _resolve(pending: PendingRequest, response: Response) -> None:
        if pending.future.done():
            return
        if response.error is not None:
            pending.future.set_exception(
                RequestError(
                    response.error["code"],
                    response.error["message"],
                    response.error.get("data"),
                )
            )
        else:
            pending.future.set_result(response.result)


Writer = Callable[[dict[str, Any]], Awaitable[None]]


class OutboundSerializer:
    """FIFO queue with exactly one drain task writing to the transport.

    ``enqueue`` only appends; messages queued while a drain is running are
    picked up by that same drain.
    """

    def __init__(self, write: Writer) -> None:
        self._write = write
        self._queue: deque[tuple[dict[str, Any], asyncio.Future[bool]]] = deque()
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def draining(self) -> bool:
        return self._draining

    @property
    def closed(self) -> bool:
        return self._closed

    def enqueue(self, message: dict[str, Any]) -> asyncio.Future[bool]:
        """Queue ``message``; the returned future is True once it was written."""
        loop = asyncio.get_running_loop()
        delivered: asyncio.Future[bool] = loop.create_future()
        if self._closed:
            log_event(logger, "rpc.outbound.closed", level=logging.WARNING, id=message.get("id"))
            delivered.set_result(False)
            return delivered
        self._queue.append((message, delivered))
        if not self._draining:
            self._draining = True
            self._drain_task = loop.create_task(self._drain(), name="southbridge.outbound.drain")
        return delivered

    async def flush(self) -> None:
        """Wait until everything queued so far has been written or dropped."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.wait({self._drain_task})

    async def close(self) -> None:
        self._closed = True
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._fail_queued()

    async def _drain(self) -> None:
        try:
            while self._queue:
                message, delivered = self._queue.popleft()
                try:
                    await self._write(message)
                except asyncio.CancelledError:
                    if not delivered.done():
                        delivered.set_result(False)
                    raise
                except Exception as exc:  # noqa: BLE001
                    log_event(
                        logger,
                        "rpc.outbound.dropped",
                        level=logging.WARNING,
                        id=message.get("id"),
                        method=message.get("method"),
                        error=str(exc),
                    )
                    ok = False
                else:
                    ok = True
                if not delivered.done():
                    delivered.set_result(ok)
        finally:
            self._draining = False
            if self._closed:
                self._fail_queued()

    def _fail_queued(self) -> None:
        while self._queue:
            _, delivered = self._queue.popleft()
            if not delivered.done():
                delivered.set_result(False)
