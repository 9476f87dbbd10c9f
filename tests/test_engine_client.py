"""Tests for the engine client lifecycle and failure containment."""

import asyncio

import pytest

from graphfill.engine.client import EngineClient
from graphfill.errors import StartupFailure
from graphfill.models import ContextQuery, ProcessState

from conftest import FakeHandler, FakeSpawner


def make_query(*identifiers):
    return ContextQuery(document_uri="file:///repo/src/main.py", identifiers=list(identifiers))


@pytest.mark.asyncio
async def test_query_context_starts_engine(client, spawner, handler):
    """Test that the first query spawns and initializes the engine."""
    snippets = await client.query_context(make_query("add", "util"))

    assert client.state is ProcessState.READY
    assert spawner.calls == 1
    assert handler.requests[0] == ("engine/initialize", {"clientName": "graphfill"})
    assert handler.requests[1] == (
        "engine/contextForIdentifiers",
        {"uri": "file:///repo/src/main.py", "identifiers": ["add", "util"], "maxSnippets": 20, "maxDepth": 4},
    )

    assert [s.kind for s in snippets] == ["symbol", "file"]
    assert snippets[0].symbol_name == "add"
    assert snippets[0].source_uri == "file:///repo/src/math.py"


@pytest.mark.asyncio
async def test_concurrent_callers_share_startup():
    """Test that callers arriving during startup do not spawn twice."""
    spawner = FakeSpawner(FakeHandler(responses={"engine/initialize": {}}), delay=0.05)
    client = EngineClient(spawner)

    results = await asyncio.gather(*(client.ensure_started() for _ in range(5)))

    assert results == [True] * 5
    assert spawner.calls == 1


@pytest.mark.asyncio
async def test_spawn_failure_is_sticky():
    """Test that a spawn failure is never retried."""
    spawner = FakeSpawner(error=StartupFailure("engine binary not found"))
    client = EngineClient(spawner)

    assert not await client.ensure_started()
    assert not await client.ensure_started()
    assert await client.query_context(make_query("add")) == []

    assert client.state is ProcessState.FAILED
    assert isinstance(client.error, StartupFailure)
    assert spawner.calls == 1


@pytest.mark.asyncio
async def test_handshake_failure_closes_process():
    """Test that a failed initialize request fails the client and closes the handler."""
    handler = FakeHandler(fail={"engine/initialize"})
    client = EngineClient(FakeSpawner(handler))

    assert not await client.ensure_started()
    assert client.state is ProcessState.FAILED
    assert handler.closed


@pytest.mark.asyncio
async def test_failed_state_issues_no_rpc():
    """Test that a failed client answers queries without touching the engine."""
    handler = FakeHandler()
    client = EngineClient(FakeSpawner(handler))
    client.state = ProcessState.FAILED

    assert await client.query_context(make_query("add")) == []
    assert handler.calls == []


@pytest.mark.asyncio
async def test_dead_engine_returns_no_context(client, handler):
    """Test the liveness probe before each query."""
    await client.ensure_started()
    handler.alive = False

    assert await client.query_context(make_query("add")) == []
    assert [m for m, _ in handler.requests] == ["engine/initialize"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [None, "text", 42, [1, 2], {"symbols": [{"content": "no file name"}]}])
async def test_malformed_responses_yield_nothing(response):
    """Test that malformed engine output degrades to no context."""
    handler = FakeHandler(responses={"engine/initialize": {}, "engine/contextForIdentifiers": response})
    client = EngineClient(FakeSpawner(handler))

    assert await client.query_context(make_query("add")) == []
    assert client.state is ProcessState.READY


@pytest.mark.asyncio
async def test_missing_symbols_is_empty():
    """Test that an object without symbols is a valid, empty response."""
    handler = FakeHandler(responses={"engine/initialize": {}, "engine/contextForIdentifiers": {"symbols": None}})
    client = EngineClient(FakeSpawner(handler))

    assert await client.query_context(make_query("add")) == []


@pytest.mark.asyncio
async def test_rpc_failure_is_swallowed():
    """Test that a transport error during a query is not raised."""
    handler = FakeHandler(responses={"engine/initialize": {}}, fail={"engine/contextForIdentifiers"})
    client = EngineClient(FakeSpawner(handler))

    assert await client.query_context(make_query("add")) == []


@pytest.mark.asyncio
async def test_notifications(client, handler):
    """Test the indexing notifications and their payloads."""
    assert await client.notify_revision_changed("file:///repo", "abc123")
    assert await client.notify_workspace_changed("file:///scratch")

    assert handler.notifications == [
        ("engine/gitRevision/didChange", {"gitDirectoryUri": "file:///repo"}),
        ("engine/workspace/didChange", {"workspaceUri": "file:///scratch"}),
    ]


@pytest.mark.asyncio
async def test_notification_failures_are_swallowed():
    """Test that failing notifications report False instead of raising."""
    handler = FakeHandler(responses={"engine/initialize": {}}, fail={"engine/workspace/didChange"})
    client = EngineClient(FakeSpawner(handler))

    assert not await client.notify_workspace_changed("file:///scratch")

    failed = EngineClient(FakeSpawner(error=StartupFailure("no engine")))
    assert not await failed.notify_revision_changed("file:///repo", "abc123")


@pytest.mark.asyncio
async def test_shutdown(client, handler):
    """Test shutdown of a running engine."""
    await client.ensure_started()
    await client.shutdown()

    assert client.state is ProcessState.STOPPED
    assert ("engine/shutdown", None) in handler.notifications
    assert handler.closed
    assert await client.query_context(make_query("add")) == []


@pytest.mark.asyncio
async def test_shutdown_without_start_is_noop():
    """Test that shutdown does nothing if the engine never started."""
    spawner = FakeSpawner()
    client = EngineClient(spawner)

    await client.shutdown()

    assert client.state is ProcessState.NOT_STARTED
    assert spawner.calls == 0

    failed = EngineClient(FakeSpawner(error=StartupFailure("no engine")))
    await failed.ensure_started()
    await failed.shutdown()
    assert failed.state is ProcessState.FAILED


def test_invalid_transition_rejected():
    """Test that the state machine refuses illegal transitions."""
    client = EngineClient(FakeSpawner())

    with pytest.raises(RuntimeError):
        client._transition(ProcessState.READY)
