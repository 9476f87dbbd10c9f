"""JSON-RPC 2.0 over the engine's stdio, framed with Content-Length headers."""

import asyncio
import json
import logging
from typing import Any, Optional

from graphfill.errors import EngineExited, RpcError

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601


def encode_message(message: dict[str, Any]) -> bytes:
    """Frame a JSON-RPC message."""
    body = json.dumps(message, separators=(",", ":")).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


async def read_message(reader: asyncio.StreamReader) -> Optional[dict[str, Any]]:
    """Read one framed message.

    Returns:
        Decoded message, or None at end of stream

    Raises:
        ValueError: If the framing or the payload is invalid
    """
    content_length: Optional[int] = None

    while True:
        line = await reader.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            if content_length is None:
                continue
            break
        name, _, value = line.decode("ascii").partition(":")
        if name.strip().lower() == "content-length":
            content_length = int(value.strip())

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError:
        return None

    message = json.loads(body.decode("utf-8"))
    if not isinstance(message, dict):
        raise ValueError(f"expected JSON-RPC object, got {type(message).__name__}")
    return message


class MessageHandler:
    """Request/notification channel to a running engine process."""

    def __init__(self, process: asyncio.subprocess.Process):
        """Initialize handler.

        Args:
            process: Engine process with piped stdin, stdout and stderr
        """
        self.process = process
        self._next_id = 1
        self._pending: dict[int, asyncio.Future] = {}
        self._closed = False
        self._reader_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start reading the engine's output."""
        self._reader_task = asyncio.create_task(self._read_loop())
        if self.process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    def is_alive(self) -> bool:
        """Whether the process is running and its output is still being read."""
        if self._closed or self.process.returncode is not None:
            return False
        return self._reader_task is not None and not self._reader_task.done()

    async def request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for its result.

        Args:
            method: JSON-RPC method name
            params: Request params
            timeout: Seconds to wait for the response

        Returns:
            The response's result

        Raises:
            EngineExited: If the engine is gone or exits before answering
            RpcError: If the engine answers with an error
            asyncio.TimeoutError: If no answer arrives within timeout
        """
        if not self.is_alive():
            raise EngineExited(f"engine not running, cannot send {method}")

        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            response = await asyncio.wait_for(future, timeout)
        finally:
            self._pending.pop(request_id, None)

        if "error" in response:
            error = response["error"] or {}
            raise RpcError(method, error.get("code", 0), error.get("message", ""), error.get("data"))
        return response.get("result")

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification; nothing comes back."""
        if not self.is_alive():
            raise EngineExited(f"engine not running, cannot send {method}")
        await self._send({"jsonrpc": "2.0", "method": method, "params": params})

    async def close(self, timeout: float = 5) -> None:
        """Close stdin and wait for the process, killing it if it lingers."""
        self._closed = True
        stdin = self.process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

        if self.process.returncode is None:
            try:
                await asyncio.wait_for(self.process.wait(), timeout)
            except asyncio.TimeoutError:
                logger.debug("engine did not exit in %ss, killing", timeout)
                self.process.kill()
                await self.process.wait()

        for task in (self._reader_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._fail_pending(EngineExited("engine closed"))

    async def _send(self, message: dict[str, Any]) -> None:
        stdin = self.process.stdin
        if stdin is None or stdin.is_closing():
            raise EngineExited("engine stdin is closed")
        try:
            stdin.write(encode_message(message))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EngineExited(str(e)) from e

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    message = await read_message(self.process.stdout)
                except (ValueError, UnicodeDecodeError) as e:
                    logger.debug("discarding unreadable engine message: %s", e)
                    continue
                if message is None:
                    break
                await self._dispatch(message)
        finally:
            self._closed = True
            self._fail_pending(EngineExited("engine output closed"))

    async def _dispatch(self, message: dict[str, Any]) -> None:
        if "method" not in message:
            future = self._pending.get(message.get("id"))
            if future is not None and not future.done():
                future.set_result(message)
            else:
                logger.debug("response for unknown request id %r", message.get("id"))
            return

        method = message["method"]
        if "id" in message:
            logger.debug("engine request %s not supported", method)
            try:
                await self._send({
                    "jsonrpc": "2.0",
                    "id": message["id"],
                    "error": {"code": METHOD_NOT_FOUND, "message": f"method not found: {method}"},
                })
            except EngineExited as e:
                logger.debug("could not answer engine request %s: %s", method, e)
        else:
            logger.debug("engine notification %s: %s", method, message.get("params"))

    async def _drain_stderr(self) -> None:
        while True:
            line = await self.process.stderr.readline()
            if not line:
                return
            logger.debug("engine: %s", line.decode("utf-8", errors="replace").rstrip())

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
