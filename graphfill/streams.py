"""Async stream combinators used by the completion orchestrator."""

import asyncio
import logging
from typing import AsyncIterator, Sequence, TypeVar

from graphfill.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _next(iterator: AsyncIterator[T]) -> T:
    return await iterator.__anext__()


async def with_timeout(
    source: AsyncIterator[T],
    timeout_ms: int,
    token: CancellationToken,
) -> AsyncIterator[T]:
    """Yield from source until it ends, the deadline passes, or token is cancelled.

    The deadline covers the whole stream, not each item. When it passes the
    token is cancelled and the stream ends quietly.

    Args:
        source: Stream to wrap
        timeout_ms: Time allowed for the whole stream
        token: Token cancelled on timeout; cancelling it ends the stream

    Yields:
        Items from source
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    iterator = source.__aiter__()

    try:
        while not token.cancelled:
            remaining = deadline - loop.time()
            if remaining <= 0:
                token.cancel("timeout")
                logger.debug("stream timed out after %sms", timeout_ms)
                return

            step = asyncio.ensure_future(_next(iterator))
            unregister = token.on_cancel(step.cancel)
            try:
                item = await asyncio.wait_for(step, remaining)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                token.cancel("timeout")
                logger.debug("stream timed out after %sms", timeout_ms)
                return
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if token.cancelled and not (current and current.cancelling()):
                    return
                raise
            finally:
                unregister()

            yield item
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


_DONE = object()


async def _pump(source: AsyncIterator[T], queue: asyncio.Queue) -> None:
    """Drain source into queue, then put _DONE. A failing source just ends."""
    iterator = source.__aiter__()
    try:
        async for item in iterator:
            queue.put_nowait(item)
    except Exception as e:
        logger.debug("dropping failed stream: %s", e)
    finally:
        queue.put_nowait(_DONE)
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def merge_by_round(sources: Sequence[AsyncIterator[T]]) -> AsyncIterator[list[T]]:
    """Run every source in its own task and yield their items round by round.

    Sources keep producing into their own buffer while the merge waits on a
    slower sibling, so one stalled source never delays the others' progress.
    Sources that are exhausted or raise drop out; the merge ends when none
    are left.

    Args:
        sources: Streams to merge

    Yields:
        One list per round, in source order, holding the next buffered item
        of every source that produced one
    """
    queues = [asyncio.Queue() for _ in sources]
    pumps = [asyncio.ensure_future(_pump(source, queue)) for source, queue in zip(sources, queues)]
    active = list(queues)

    try:
        while active:
            items = await asyncio.gather(*(queue.get() for queue in active))

            produced = []
            still_active = []
            for queue, item in zip(active, items):
                if item is not _DONE:
                    produced.append(item)
                    still_active.append(queue)
            active = still_active

            if produced:
                yield produced
    finally:
        for pump in pumps:
            if not pump.done():
                pump.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)
