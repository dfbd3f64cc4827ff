"""Transports carrying JSON-RPC messages between the client and the agent.

The default transport is half-duplex over HTTP: the agent pushes messages as
Server-Sent Events on ``GET /sse`` and the client posts each outbound message
as a JSON body to ``POST /messages``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Protocol

import httpx

from southbridge.errors import TransportError
from southbridge.log_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_SSE_PATH = "/sse"
DEFAULT_MESSAGES_PATH = "/messages"
DEFAULT_POST_TIMEOUT_S = 30.0


class Transport(Protocol):
    """Bidirectional message channel; inbound and outbound fail independently."""

    async def connect(self) -> None: ...

    def messages(self) -> AsyncIterator[Any]: ...

    async def send(self, message: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class SSETransport:
    """SSE inbound stream plus HTTP POST outbound calls, both via httpx."""

    def __init__(
        self,
        base_url: str,
        *,
        sse_path: str = DEFAULT_SSE_PATH,
        messages_path: str = DEFAULT_MESSAGES_PATH,
        http_client: httpx.AsyncClient | None = None,
        post_timeout: float = DEFAULT_POST_TIMEOUT_S,
    ) -> None:
        base = httpx.URL(base_url)
        self.sse_url = base.join(sse_path)
        self.post_url = base.join(messages_path)
        self._client = http_client
        self._owns_client = http_client is None
        self._post_timeout = post_timeout
        self._response: httpx.Response | None = None

    async def connect(self) -> None:
        """Open the event stream; returns once response headers arrive."""
        if self._client is None:
            # Reads on the event stream may idle indefinitely.
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._post_timeout, read=None))
        logger.info("Connecting to SSE at %s", self.sse_url)
        request = self._client.build_request("GET", self.sse_url, headers={"Accept": "text/event-stream"})
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"SSE connection failed: {exc}") from exc
        if response.status_code >= 400:
            await response.aclose()
            raise TransportError(f"SSE connection failed: HTTP {response.status_code}")
        self._response = response

    async def messages(self) -> AsyncIterator[Any]:
        if self._response is None:
            raise TransportError("Transport is not connected")
        try:
            async for payload in _iter_sse(self._response):
                yield payload
        except httpx.HTTPError as exc:
            raise TransportError(f"SSE stream error: {exc}") from exc

    async def send(self, message: dict[str, Any]) -> None:
        if self._client is None:
            raise TransportError("Transport is not connected")
        try:
            response = await self._client.post(self.post_url, json=message)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to send message: {exc}") from exc
        if response.is_error:
            raise TransportError(f"Failed to send message: HTTP {response.status_code} {response.reason_phrase}")

    async def close(self) -> None:
        if self._response is not None:
            await self._response.aclose()
            self._response = None
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


async def _iter_sse(response: httpx.Response) -> AsyncIterator[Any]:
    """Yield decoded ``data:`` payloads; undecodable events are logged and skipped."""
    buffered: list[str] = []
    async for line in response.aiter_lines():
        if line.startswith("data:"):
            buffered.append(line[5:].lstrip())
            continue
        if line.strip() != "":
            # event:, id:, retry: and comments carry nothing we route on
            continue
        if not buffered:
            continue
        data = "\n".join(buffered)
        buffered = []
        try:
            yield json.loads(data)
        except json.JSONDecodeError as exc:
            log_event(logger, "transport.sse.undecodable", level=logging.WARNING, error=str(exc), data=data[:200])
    if buffered:
        try:
            yield json.loads("\n".join(buffered))
        except json.JSONDecodeError as exc:
            log_event(logger, "transport.sse.undecodable", level=logging.WARNING, error=str(exc))
