"""Tests for the JSON-RPC channel against a scripted engine process."""

import asyncio

import pytest

from graphfill.engine.client import EngineClient
from graphfill.engine.jsonrpc import encode_message, read_message
from graphfill.engine.spawn import spawn_engine
from graphfill.errors import EngineExited, RpcError
from graphfill.models import ContextQuery, ProcessState


def test_encode_message_framing():
    """Test Content-Length framing of a message."""
    data = encode_message({"jsonrpc": "2.0", "method": "ping"})

    header, body = data.split(b"\r\n\r\n", 1)
    assert header == b"Content-Length: %d" % len(body)
    assert b'"method":"ping"' in body


@pytest.mark.asyncio
async def test_read_message_roundtrip():
    """Test reading framed messages back from a stream."""
    reader = asyncio.StreamReader()
    reader.feed_data(encode_message({"id": 1, "result": {"ok": True}}))
    reader.feed_data(encode_message({"method": "log", "params": "hi"}))
    reader.feed_eof()

    first = await read_message(reader)
    second = await read_message(reader)
    third = await read_message(reader)

    assert first == {"id": 1, "result": {"ok": True}}
    assert second["method"] == "log"
    assert third is None


@pytest.mark.asyncio
async def test_request_and_notify(fake_engine_args):
    """Test requests and notifications against a real process."""
    python, args = fake_engine_args
    handler = await spawn_engine(python, args)
    try:
        assert handler.is_alive()

        result = await handler.request("engine/initialize", {"clientName": "tests"}, timeout=10)
        assert result == {"clientName": "tests"}

        await handler.notify("engine/workspace/didChange", {"workspaceUri": "file:///ws"})
        received = await handler.request("test/notifications", timeout=10)
        assert received == [["engine/workspace/didChange", {"workspaceUri": "file:///ws"}]]

        with pytest.raises(RpcError):
            await handler.request("engine/unknown", timeout=10)
    finally:
        await handler.close()

    assert not handler.is_alive()
    with pytest.raises(EngineExited):
        await handler.request("engine/initialize", {"clientName": "tests"})


@pytest.mark.asyncio
async def test_pending_request_fails_when_engine_exits(fake_engine_args):
    """Test that an engine exiting is noticed by the liveness probe."""
    python, args = fake_engine_args
    handler = await spawn_engine(python, [*args, "exit-after-init"])
    try:
        await handler.request("engine/initialize", {"clientName": "tests"}, timeout=10)
        await asyncio.wait_for(handler.process.wait(), 10)
        for _ in range(100):
            if not handler.is_alive():
                break
            await asyncio.sleep(0.01)

        assert not handler.is_alive()
        with pytest.raises(EngineExited):
            await handler.request("engine/contextForIdentifiers", {}, timeout=10)
    finally:
        await handler.close()


@pytest.mark.asyncio
async def test_client_end_to_end(fake_engine_args):
    """Test the engine client lifecycle with a real process."""
    python, args = fake_engine_args
    client = EngineClient.for_engine(python, args, handshake_timeout=10, request_timeout=10)

    snippets = await client.query_context(ContextQuery(document_uri="file:///a.py", identifiers=["add", "mul"]))

    assert client.state is ProcessState.READY
    assert [s.symbol_name for s in snippets] == ["add", "mul"]
    assert snippets[0].source_uri == "file:///src/add.py"
    assert snippets[0].kind == "symbol"

    await client.shutdown()
    assert client.state is ProcessState.STOPPED
    assert await client.query_context(ContextQuery(document_uri="file:///a.py", identifiers=["add"])) == []


@pytest.mark.asyncio
async def test_client_garbage_response(fake_engine_args):
    """Test that a non-object response yields no context."""
    python, args = fake_engine_args
    client = EngineClient.for_engine(python, [*args, "garbage"], handshake_timeout=10, request_timeout=10)
    try:
        snippets = await client.query_context(ContextQuery(document_uri="file:///a.py", identifiers=["add"]))
        assert snippets == []
        assert client.state is ProcessState.READY
    finally:
        await client.shutdown()


@pytest.mark.asyncio
async def test_client_failed_handshake_is_sticky(fake_engine_args):
    """Test that an initialize error leaves the client failed for good."""
    python, args = fake_engine_args
    client = EngineClient.for_engine(python, [*args, "fail-init"], handshake_timeout=10)

    assert not await client.ensure_started()
    assert client.state is ProcessState.FAILED
    assert "cannot initialize" in str(client.error)

    assert await client.query_context(ContextQuery(document_uri="file:///a.py", identifiers=["x"])) == []
    await client.shutdown()
    assert client.state is ProcessState.FAILED
