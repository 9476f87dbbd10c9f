"""Fan-out of generation requests and merging of their result streams."""

import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Sequence

from graphfill.cancellation import CancellationToken
from graphfill.constants import DEFAULT_COMPLETIONS, DEFAULT_TIMEOUT_MS
from graphfill.errors import ModelError
from graphfill.llm import ModelBackend
from graphfill.models import CompletionResult, GenerationRequest, Message, SamplingParams
from graphfill.streams import merge_by_round, with_timeout
from graphfill.text_processing import first_line

logger = logging.getLogger(__name__)


@dataclass
class GenerateOptions:
    """How many completions to request and how long each may take."""

    n: int = DEFAULT_COMPLETIONS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    multiline: bool = True


class CompletionOrchestrator:
    """Runs N independent generation branches and merges their output."""

    def __init__(self, backend: ModelBackend, post_process: Optional[Callable[[str], str]] = None):
        """Initialize orchestrator.

        Args:
            backend: Model backend to submit requests to
            post_process: Applied to the accumulated raw text of each branch
        """
        self.backend = backend
        self.post_process = post_process or (lambda raw: raw)

    def requests(
        self,
        messages: Sequence[Message],
        sampling: SamplingParams,
        options: GenerateOptions,
        parent: CancellationToken,
    ) -> list[GenerationRequest]:
        """One request per branch, each with its own child token."""
        return [
            GenerationRequest(
                messages=list(messages),
                sampling=sampling,
                timeout_ms=options.timeout_ms,
                token=parent.child(),
            )
            for _ in range(options.n)
        ]

    async def run_branch(
        self,
        index: int,
        request: GenerationRequest,
        multiline: bool = True,
    ) -> AsyncIterator[CompletionResult]:
        """Stream results for a single branch.

        Ends early, without a final result, on timeout or cancellation. A
        backend error ends the branch with a final result carrying the error.

        Args:
            index: Branch number, copied onto every result
            request: The branch's generation request
            multiline: If False, stop at the first complete line

        Yields:
            Partial results, then a final one if the stream ran to completion
        """
        raw = ""
        source = self.backend.submit(request.messages, request.sampling, request.timeout_ms, request.token)

        try:
            async with aclosing(with_timeout(source, request.timeout_ms, request.token)) as stream:
                async for delta in stream:
                    raw += delta
                    text = self.post_process(raw)

                    if not multiline:
                        line = first_line(text)
                        if line is not None:
                            request.token.cancel("first line complete")
                            yield CompletionResult(branch=index, text=line, raw=raw, is_final=True)
                            return

                    yield CompletionResult(branch=index, text=text, raw=raw)
        except ModelError as e:
            logger.debug("branch %d failed: %s", index, e)
            yield CompletionResult(
                branch=index,
                text=self.post_process(raw),
                raw=raw,
                is_final=True,
                error=str(e),
            )
            return

        if request.token.cancelled:
            logger.debug("branch %d ended early: %s", index, request.token.reason)
            return

        yield CompletionResult(branch=index, text=self.post_process(raw), raw=raw, is_final=True)

    def generate(
        self,
        messages: Sequence[Message],
        sampling: SamplingParams,
        options: GenerateOptions,
        parent: CancellationToken,
    ) -> AsyncIterator[list[CompletionResult]]:
        """Fan out options.n branches and merge them round by round.

        Args:
            messages: Prompt turns shared by every branch
            sampling: Sampling parameters shared by every branch
            options: Fan-out count, per-branch timeout and line mode
            parent: Cancelling this cancels every branch

        Returns:
            Async iterator of per-round result lists
        """
        requests = self.requests(messages, sampling, options, parent)
        branches = [
            self.run_branch(i, request, options.multiline) for i, request in enumerate(requests)
        ]
        return merge_by_round(branches)
