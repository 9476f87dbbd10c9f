"""Pytest configuration and fixtures."""

import asyncio
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

from graphfill.cancellation import CancellationToken
from graphfill.engine.client import EngineClient
from graphfill.errors import EngineExited
from graphfill.models import ContextSnippet, DocumentContext

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"


class FakeHandler:
    """Stands in for a MessageHandler, recording every call."""

    def __init__(self, responses: Optional[dict[str, Any]] = None, fail: Optional[set[str]] = None):
        self.responses = responses or {}
        self.fail = fail or set()
        self.requests: list[tuple[str, Any]] = []
        self.notifications: list[tuple[str, Any]] = []
        self.alive = True
        self.closed = False

    def is_alive(self) -> bool:
        return self.alive

    async def request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        self.requests.append((method, params))
        if method in self.fail:
            raise EngineExited(f"{method} failed")
        return self.responses.get(method)

    async def notify(self, method: str, params: Any = None) -> None:
        self.notifications.append((method, params))
        if method in self.fail:
            raise EngineExited(f"{method} failed")

    async def close(self, timeout: float = 5) -> None:
        self.closed = True
        self.alive = False

    @property
    def calls(self) -> list[tuple[str, Any]]:
        return self.requests + self.notifications


class FakeSpawner:
    """Spawner returning a FakeHandler, counting how often it was called."""

    def __init__(self, handler: Optional[FakeHandler] = None, error: Optional[Exception] = None, delay: float = 0):
        self.handler = handler or FakeHandler()
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self) -> FakeHandler:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.handler


class FakeBackend:
    """Model backend that streams scripted deltas, one script per call."""

    def __init__(self, scripts: list[dict]):
        """Each script: {"deltas": [...], "delay": seconds before each delta, "error": exc}."""
        self.scripts = scripts
        self.calls = 0
        self.requests: list[tuple] = []

    async def submit(self, messages, sampling, timeout_ms, token: CancellationToken):
        script = self.scripts[self.calls % len(self.scripts)]
        self.calls += 1
        self.requests.append((messages, sampling, timeout_ms, token))

        for delta in script.get("deltas", []):
            await asyncio.sleep(script.get("delay", 0))
            if token.cancelled:
                return
            yield delta

        if script.get("error") is not None:
            raise script["error"]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def handler():
    return FakeHandler(responses={
        "engine/initialize": {},
        "engine/contextForIdentifiers": {
            "symbols": [
                {"fileName": "/repo/src/math.py", "symbol": "add", "content": "def add(a, b):\n    return a + b\n"},
                {"fileName": "/repo/src/util.py", "content": "# helpers\n"},
            ]
        },
    })


@pytest.fixture
def spawner(handler):
    return FakeSpawner(handler)


@pytest.fixture
def client(spawner):
    return EngineClient(spawner)


@pytest.fixture
def python_document():
    text = (
        "from math_utils import add, multiply\n"
        "\n"
        "def total(values):\n"
        "    # sum everything up\n"
        "    result = add(values[0], values[1])\n"
        "    return multiply(result, \"factor\")\n"
        "\n"
        "print(total([1, 2]))\n"
    )
    return DocumentContext.from_text("file:///repo/src/main.py", "python", text, line=6, character=0)


@pytest.fixture
def snippets():
    return [
        ContextSnippet(source_uri="file:///repo/a.py", content="def alpha():\n    pass\n", symbol_name="alpha"),
        ContextSnippet(source_uri="file:///repo/b.py", content="x = 1\n" * 40),
        ContextSnippet(source_uri="file:///repo/c.py", content="def gamma(): ...", symbol_name="gamma"),
    ]


@pytest.fixture
def fake_engine_args():
    """Spawn arguments for the scripted stdio engine."""
    return sys.executable, [str(FAKE_ENGINE)]
