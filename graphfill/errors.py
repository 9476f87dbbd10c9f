"""Exception types raised inside graphfill.

None of these escape the retrieval path: the engine client and indexing
supervisor log and swallow them so a completion always proceeds, with less
context if need be.
"""

from typing import Any, Optional


class GraphfillError(Exception):
    """Base class for graphfill errors."""


class StartupFailure(GraphfillError):
    """The engine process could not be spawned or did not complete its handshake."""


class EngineExited(GraphfillError):
    """The engine process went away while a request was outstanding."""


class RpcError(GraphfillError):
    """The engine answered a request with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str, data: Optional[Any] = None):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.data = data


class ModelError(GraphfillError):
    """The model backend reported a failure while streaming."""
