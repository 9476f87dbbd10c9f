"""Cancellation tokens arranged as a tree.

Cancelling a token cancels every token forked from it. Cancelling a child
leaves its parent and siblings untouched.
"""

import asyncio
from typing import Callable, Optional


class CancellationToken:
    """A cancellation signal that can be forked into child tokens."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        """Initialize token.

        Args:
            parent: Token whose cancellation propagates to this one
        """
        self.parent = parent
        self._cancelled = False
        self._reason: Optional[str] = None
        self._children: list["CancellationToken"] = []
        self._callbacks: list[Callable[[], None]] = []
        self._event: Optional[asyncio.Event] = None

        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def child(self) -> "CancellationToken":
        """Fork a child token."""
        return CancellationToken(parent=self)

    def cancel(self, reason: Optional[str] = None) -> None:
        """Cancel this token and all of its descendants."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason

        if self._event is not None:
            self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

        for child in list(self._children):
            child.cancel(reason)

        if self.parent is not None and self in self.parent._children:
            self.parent._children.remove(self)

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run once on cancellation.

        Runs immediately if the token is already cancelled.

        Returns:
            Function that unregisters the callback
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()
