from __future__ import annotations

import json

import httpx
import pytest

from southbridge.errors import TransportError
from southbridge.transport import SSETransport

SSE_BODY = (
    b": keep-alive\n"
    b"event: message\n"
    b'data: {"jsonrpc": "2.0", "id": 0, "result": {}}\n'
    b"\n"
    b"data: not json\n"
    b"\n"
    b'data: {"jsonrpc": "2.0",\n'
    b'data:  "method": "session/update"}\n'
    b"\n"
    b'data: {"jsonrpc": "2.0", "id": "t", "method": "writeTextFile", "params": {}}\n'
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_sse_stream_yields_decoded_events():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/sse"
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=SSE_BODY)

    transport = SSETransport("http://agent.test", http_client=_client(handler))
    await transport.connect()
    received = [message async for message in transport.messages()]
    await transport.close()

    assert received == [
        {"jsonrpc": "2.0", "id": 0, "result": {}},
        {"jsonrpc": "2.0", "method": "session/update"},
        {"jsonrpc": "2.0", "id": "t", "method": "writeTextFile", "params": {}},
    ]


@pytest.mark.asyncio
async def test_send_posts_json_body():
    posted = []

    def handler(request: httpx.Request) -> httpx.Response:
        posted.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(202)

    transport = SSETransport("http://agent.test", http_client=_client(handler))
    await transport.send({"jsonrpc": "2.0", "id": 1, "result": {}})

    assert posted == [("POST", "/messages", {"jsonrpc": "2.0", "id": 1, "result": {}})]


@pytest.mark.asyncio
async def test_send_http_error_raises_transport_error():
    transport = SSETransport("http://agent.test", http_client=_client(lambda request: httpx.Response(500)))

    with pytest.raises(TransportError):
        await transport.send({"jsonrpc": "2.0", "id": 1, "result": {}})


@pytest.mark.asyncio
async def test_connect_failure_raises_transport_error():
    transport = SSETransport("http://agent.test", http_client=_client(lambda request: httpx.Response(404)))

    with pytest.raises(TransportError):
        await transport.connect()


@pytest.mark.asyncio
async def test_messages_before_connect():
    transport = SSETransport("http://agent.test")

    with pytest.raises(TransportError):
        async for _ in transport.messages():
            pass


def test_urls_are_joined_against_base():
    transport = SSETransport("http://agent.test:3000", sse_path="/events", messages_path="/rpc")

    assert str(transport.sse_url) == "http://agent.test:3000/events"
    assert str(transport.post_url) == "http://agent.test:3000/rpc"
