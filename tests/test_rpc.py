from __future__ import annotations

import asyncio

import pytest
from acp import RequestError

from southbridge.errors import TransportClosed
from southbridge.messages import Request
from southbridge.rpc import Correlator, MessageKind, OutboundSerializer


@pytest.mark.asyncio
async def test_ids_start_at_zero_and_increase():
    correlator = Correlator()

    ids = [correlator.submit("m", {}).id for _ in range(3)]

    assert ids == [0, 1, 2]
    assert correlator.pending_ids == [0, 1, 2]


@pytest.mark.asyncio
async def test_response_resolves_pending_once():
    correlator = Correlator()
    request = correlator.submit("initialize", {"a": 1})
    future = correlator.future_for(request.id)

    first = correlator.observe({"jsonrpc": "2.0", "id": request.id, "result": {"ok": True}})
    second = correlator.observe({"jsonrpc": "2.0", "id": request.id, "result": {"ok": False}})

    assert first.kind is MessageKind.RESPONSE
    assert first.pending.method == "initialize"
    assert second.kind is MessageKind.UNMATCHED_RESPONSE
    assert await future == {"ok": True}
    assert correlator.pending_ids == []


@pytest.mark.asyncio
async def test_error_response_raises_request_error():
    correlator = Correlator()
    request = correlator.submit("session/new", {})
    future = correlator.future_for(request.id)

    correlator.observe({"jsonrpc": "2.0", "id": request.id, "error": {"code": -32602, "message": "bad", "data": [1]}})

    with pytest.raises(RequestError) as excinfo:
        await future
    assert excinfo.value.code == -32602
    assert excinfo.value.data == [1]


@pytest.mark.asyncio
async def test_unmatched_response_is_dropped():
    correlator = Correlator()
    correlator.submit("m", {})

    classified = correlator.observe({"jsonrpc": "2.0", "id": 99, "result": {}})
    by_string = correlator.observe({"jsonrpc": "2.0", "id": "0", "result": {}})

    assert classified.kind is MessageKind.UNMATCHED_RESPONSE
    assert by_string.kind is MessageKind.UNMATCHED_RESPONSE
    assert correlator.pending_ids == [0]


@pytest.mark.asyncio
async def test_peer_requests_and_malformed_input():
    correlator = Correlator()

    peer = correlator.observe({"jsonrpc": "2.0", "id": "abc", "method": "writeTextFile", "params": {}})
    notification = correlator.observe({"jsonrpc": "2.0", "method": "session/update"})
    malformed = [correlator.observe(raw) for raw in (None, [], {"jsonrpc": "2.0"}, {"id": True, "result": 1})]

    assert peer.kind is MessageKind.PEER_REQUEST
    assert isinstance(peer.message, Request)
    assert peer.message.id == "abc"
    assert notification.kind is MessageKind.PEER_REQUEST
    assert all(item.kind is MessageKind.MALFORMED for item in malformed)


@pytest.mark.asyncio
async def test_abandon_all_fails_pending_futures():
    correlator = Correlator()
    futures = [correlator.future_for(correlator.submit("m", {}).id) for _ in range(2)]

    assert correlator.abandon_all() == 2
    for future in futures:
        with pytest.raises(TransportClosed):
            await future
    # a late response is no longer matched
    assert correlator.observe({"jsonrpc": "2.0", "id": 0, "result": 1}).kind is MessageKind.UNMATCHED_RESPONSE


@pytest.mark.asyncio
async def test_serializer_keeps_fifo_under_concurrent_enqueue():
    written: list[int] = []
    active = 0
    max_active = 0

    async def write(message):
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0)
        written.append(message["n"])
        active -= 1

    serializer = OutboundSerializer(write)
    order: list[int] = []

    async def producer(start: int):
        for n in range(start, start + 10):
            order.append(n)
            serializer.enqueue({"n": n})
            await asyncio.sleep(0)

    await asyncio.gather(*(producer(i * 100) for i in range(5)))
    await serializer.flush()

    assert written == order
    assert len(written) == len(set(written)) == 50
    assert max_active == 1
    assert not serializer.draining


@pytest.mark.asyncio
async def test_serializer_drops_failed_writes_and_continues():
    written = []

    async def write(message):
        if message["n"] == 1:
            raise OSError("connection reset")
        written.append(message["n"])

    serializer = OutboundSerializer(write)
    results = [serializer.enqueue({"n": n}) for n in range(3)]

    assert [await r for r in results] == [True, False, True]
    assert written == [0, 2]


@pytest.mark.asyncio
async def test_serializer_close_fails_queued_and_new_messages():
    gate = asyncio.Event()

    async def write(message):
        await gate.wait()

    serializer = OutboundSerializer(write)
    first = serializer.enqueue({"n": 0})
    second = serializer.enqueue({"n": 1})
    await asyncio.sleep(0)

    await serializer.close()
    late = serializer.enqueue({"n": 2})

    assert await first is False
    assert await second is False
    assert await late is False
    assert serializer.closed
