"""Client for the external graph-context engine.

The engine is started lazily on first use. If it fails to spawn or to answer
the initialize handshake the client stays failed for the rest of the session,
and every call returns an empty result instead of retrying.
"""

import asyncio
import logging
import time
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from graphfill.constants import (
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_SHUTDOWN_TIMEOUT,
    ENGINE_CLIENT_NAME,
    RPC_CONTEXT_FOR_IDENTIFIERS,
    RPC_GIT_REVISION_DID_CHANGE,
    RPC_INITIALIZE,
    RPC_SHUTDOWN,
    RPC_WORKSPACE_DID_CHANGE,
)
from graphfill.engine.jsonrpc import MessageHandler
from graphfill.engine.spawn import spawn_engine
from graphfill.errors import StartupFailure
from graphfill.models import (
    ContextQuery,
    ContextSnippet,
    MalformedResponse,
    ProcessState,
    parse_context_response,
)

logger = logging.getLogger(__name__)

Spawner = Callable[[], Awaitable[MessageHandler]]

ALLOWED_TRANSITIONS = {
    ProcessState.NOT_STARTED: {ProcessState.STARTING},
    ProcessState.STARTING: {ProcessState.READY, ProcessState.FAILED},
    ProcessState.READY: {ProcessState.STOPPED},
    ProcessState.FAILED: set(),
    ProcessState.STOPPED: set(),
}


class EngineClient:
    """Owns the engine process and its JSON-RPC channel."""

    def __init__(
        self,
        spawn: Spawner,
        client_name: str = ENGINE_CLIENT_NAME,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        request_timeout: Optional[float] = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ):
        """Initialize engine client.

        Args:
            spawn: Coroutine function that starts the engine
            client_name: Name sent in the initialize handshake
            handshake_timeout: Seconds allowed for the initialize request
            request_timeout: Seconds allowed for each context request
            shutdown_timeout: Seconds to wait for the process to exit
        """
        self._spawn = spawn
        self.client_name = client_name
        self.handshake_timeout = handshake_timeout
        self.request_timeout = request_timeout
        self.shutdown_timeout = shutdown_timeout

        self.state = ProcessState.NOT_STARTED
        self.error: Optional[Exception] = None
        self._handler: Optional[MessageHandler] = None
        self._startup: Optional[asyncio.Future] = None

    @classmethod
    def for_engine(
        cls,
        engine_path: str,
        args: Optional[list[str]] = None,
        cwd: Optional[Path] = None,
        verbose: bool = False,
        **kwargs: Any,
    ) -> "EngineClient":
        """Client that spawns the engine binary at engine_path."""
        return cls(partial(spawn_engine, engine_path, args, cwd=cwd, verbose=verbose), **kwargs)

    def _transition(self, new_state: ProcessState, error: Optional[Exception] = None) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid engine state transition {self.state.value} -> {new_state.value}")
        logger.debug("engine %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        if error is not None:
            self.error = error

    @property
    def ready(self) -> bool:
        return self.state is ProcessState.READY

    def is_alive(self) -> bool:
        return self.ready and self._handler is not None and self._handler.is_alive()

    async def ensure_started(self) -> bool:
        """Start the engine if needed.

        Concurrent callers share one startup. Cancelling a caller does not
        cancel the startup.

        Returns:
            True if the engine is ready
        """
        if self.state is ProcessState.NOT_STARTED:
            self._transition(ProcessState.STARTING)
            self._startup = asyncio.ensure_future(self._start())

        if self.state is ProcessState.STARTING:
            await asyncio.shield(self._startup)

        return self.state is ProcessState.READY

    async def _start(self) -> None:
        handler: Optional[MessageHandler] = None
        started = time.monotonic()
        try:
            handler = await self._spawn()
            await handler.request(
                RPC_INITIALIZE,
                {"clientName": self.client_name},
                timeout=self.handshake_timeout,
            )
        except Exception as e:
            error = e if isinstance(e, StartupFailure) else StartupFailure(f"{type(e).__name__}: {e}")
            logger.warning("engine failed to initialize: %s", error)
            self._transition(ProcessState.FAILED, error)
            if handler is not None:
                await handler.close(self.shutdown_timeout)
            return

        self._handler = handler
        self._transition(ProcessState.READY)
        logger.info("engine ready in %.0fms", (time.monotonic() - started) * 1000)

    async def _notify(self, method: str, params: Any) -> bool:
        try:
            if not await self.ensure_started():
                logger.debug("skipping %s: engine %s", method, self.state.value)
                return False
            await self._handler.notify(method, params)
            return True
        except Exception as e:
            logger.debug("%s failed: %s", method, e)
            return False

    async def notify_revision_changed(self, repository_uri: str, commit: Optional[str] = None) -> bool:
        """Tell the engine a repository moved to a new revision.

        Returns:
            Whether the notification was sent
        """
        sent = await self._notify(RPC_GIT_REVISION_DID_CHANGE, {"gitDirectoryUri": repository_uri})
        if sent:
            logger.debug("gitRevision/didChange %s:%s", repository_uri, commit)
        return sent

    async def notify_workspace_changed(self, workspace_uri: str) -> bool:
        """Ask the engine to index a workspace folder that is not a git checkout.

        Returns:
            Whether the notification was sent
        """
        sent = await self._notify(RPC_WORKSPACE_DID_CHANGE, {"workspaceUri": workspace_uri})
        if sent:
            logger.debug("workspace/didChange %s", workspace_uri)
        return sent

    async def query_context(self, query: ContextQuery) -> list[ContextSnippet]:
        """Look up context snippets for the identifiers in a query.

        Never raises: any failure (engine failed or dead, RPC error, timeout,
        malformed response) yields an empty list.

        Args:
            query: Identifiers and limits

        Returns:
            Snippets in the engine's ranking order
        """
        if self.state in (ProcessState.FAILED, ProcessState.STOPPED):
            return []

        try:
            if not await self.ensure_started():
                return []
            if not self._handler.is_alive():
                logger.debug("engine not alive")
                return []

            started = time.monotonic()
            raw = await self._handler.request(
                RPC_CONTEXT_FOR_IDENTIFIERS,
                query.to_params(),
                timeout=self.request_timeout,
            )
        except Exception as e:
            logger.debug("contextForIdentifiers failed: %s", e)
            return []

        parsed = parse_context_response(raw)
        if isinstance(parsed, MalformedResponse):
            logger.debug("malformed contextForIdentifiers response: %s", parsed.reason)
            return []

        snippets = parsed.snippets()
        logger.debug(
            "contextForIdentifiers %d identifiers -> %d snippets in %.0fms",
            len(query.identifiers),
            len(snippets),
            (time.monotonic() - started) * 1000,
        )
        return snippets

    async def shutdown(self) -> None:
        """Stop the engine if it ever became ready; otherwise do nothing."""
        if self.state is ProcessState.STARTING and self._startup is not None:
            await asyncio.shield(self._startup)

        if self.state is not ProcessState.READY:
            return

        try:
            await self._handler.notify(RPC_SHUTDOWN, None)
        except Exception as e:
            logger.debug("shutdown notification failed: %s", e)

        self._transition(ProcessState.STOPPED)
        await self._handler.close(self.shutdown_timeout)
