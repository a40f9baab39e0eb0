"""
Tests for the message transports.
"""

import asyncio
import io
import json

import pytest

from inference_worker.transport.transports import JsonLinesTransport, QueueTransport


# ============================================================================
# QueueTransport
# ============================================================================

@pytest.mark.asyncio
async def test_queue_transport_round_trip():
    transport = QueueTransport()
    transport.post({"kind": "unloadModel"})
    transport.close_inbox()

    assert await transport.receive() == {"kind": "unloadModel"}
    assert await transport.receive() is None

    await transport.send({"kind": "modelUnloaded"})
    assert await transport.next_outbound(timeout=1) == {"kind": "modelUnloaded"}
    assert transport.drain_outbound() == []


@pytest.mark.asyncio
async def test_queue_transport_send_after_close_fails():
    transport = QueueTransport()
    await transport.close()

    assert transport.closed is True
    assert await transport.receive() is None
    with pytest.raises(ConnectionError):
        await transport.send({"kind": "error"})


@pytest.mark.asyncio
async def test_next_outbound_times_out():
    with pytest.raises(asyncio.TimeoutError):
        await QueueTransport().next_outbound(timeout=0.01)


# ============================================================================
# JsonLinesTransport
# ============================================================================

@pytest.mark.asyncio
async def test_json_lines_receive_skips_blank_lines():
    reader = io.StringIO('\n{"kind": "loadModel", "modelPath": "m1"}\n\n')
    transport = JsonLinesTransport(reader, io.StringIO())

    assert await transport.receive() == {"kind": "loadModel", "modelPath": "m1"}
    assert await transport.receive() is None


@pytest.mark.asyncio
async def test_json_lines_send_writes_one_line_per_message():
    writer = io.StringIO()
    transport = JsonLinesTransport(io.StringIO(), writer)

    await transport.send({"kind": "streamChunk", "data": {"content": "é"}})
    await transport.send({"kind": "error"})

    lines = writer.getvalue().splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["data"]["content"] == "é"


@pytest.mark.asyncio
async def test_json_lines_malformed_input_is_answered():
    reader = io.StringIO('{not json}\n{"kind": "unloadModel"}\n')
    writer = io.StringIO()
    transport = JsonLinesTransport(reader, writer)

    assert await transport.receive() == {"kind": "unloadModel"}

    [line] = writer.getvalue().splitlines()
    error = json.loads(line)
    assert error["kind"] == "error"
    assert error["error"]["code"] == "ValidationError"


@pytest.mark.asyncio
async def test_json_lines_closed():
    transport = JsonLinesTransport(io.StringIO('{"kind": "x"}\n'), io.StringIO())
    await transport.close()

    assert await transport.receive() is None
    with pytest.raises(ConnectionError):
        await transport.send({})
