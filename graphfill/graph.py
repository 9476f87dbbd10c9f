"""LangGraph orchestration of a completion attempt."""

import logging
import time
from typing import AsyncIterator, Optional

from langgraph.graph import END, StateGraph

from graphfill.cancellation import CancellationToken
from graphfill.models import CompletionResult, DocumentContext, LastCandidate
from graphfill.orchestrator import GenerateOptions
from graphfill.prompt import BuiltPrompt
from graphfill.provider import FimProvider
from graphfill.retriever import GraphContextRetriever
from graphfill.state import CompletionState
from graphfill.utils.logging import SessionLogger

logger = logging.getLogger(__name__)


class CompletionPipeline:
    """Retrieves context, builds the prompt and streams completions."""

    def __init__(
        self,
        retriever: GraphContextRetriever,
        provider: FimProvider,
        session_logger: Optional[SessionLogger] = None,
    ):
        """Initialize the pipeline.

        Args:
            retriever: Context retriever
            provider: Completion provider
            session_logger: Optional transcript writer
        """
        self.retriever = retriever
        self.provider = provider
        self.session_logger = session_logger
        self.graph = self.build_graph()

    def build_graph(self):
        """Build the LangGraph workflow.

        Returns:
            Compiled StateGraph
        """
        workflow = StateGraph(CompletionState)

        workflow.add_node("retrieve", self.retrieve_node)
        workflow.add_node("build_prompt", self.build_prompt_node)

        workflow.set_entry_point("retrieve")
        workflow.add_edge("retrieve", "build_prompt")
        workflow.add_edge("build_prompt", END)

        return workflow.compile()

    async def retrieve_node(self, state: CompletionState) -> dict:
        """Fetch context snippets; any failure means no context."""
        document = state["document"]
        last_candidate = state.get("last_candidate")
        query = self.retriever.build_query(document, last_candidate)
        started = time.monotonic()

        try:
            snippets = await self.retriever.lookup(document, query)
        except Exception as e:
            logger.warning("context retrieval failed, continuing without context: %s", e)
            snippets = []

        duration_ms = (time.monotonic() - started) * 1000
        if self.session_logger is not None:
            self.session_logger.log_retrieval(document.uri, query.identifiers, len(snippets), duration_ms)

        return {"query": query, "snippets": snippets, "retrieval_ms": duration_ms}

    async def build_prompt_node(self, state: CompletionState) -> dict:
        """Pack retrieved snippets into a prompt."""
        prompt = self.provider.build_prompt(state["document"], state.get("snippets", []))
        logger.debug(
            "prompt %d chars, %d/%d snippets packed",
            len(prompt.text),
            len(prompt.packed),
            len(state.get("snippets", [])),
        )
        return {"prompt": prompt}

    async def prepare(self, document: DocumentContext, last_candidate: Optional[LastCandidate] = None) -> BuiltPrompt:
        """Run retrieval and prompt building.

        Returns:
            The built prompt
        """
        result = await self.graph.ainvoke({
            "document": document,
            "last_candidate": last_candidate,
            "snippets": [],
        })
        return result["prompt"]

    async def complete(
        self,
        document: DocumentContext,
        options: Optional[GenerateOptions] = None,
        token: Optional[CancellationToken] = None,
        last_candidate: Optional[LastCandidate] = None,
    ) -> AsyncIterator[list[CompletionResult]]:
        """Stream completions for the cursor position.

        Args:
            document: Document context at the cursor
            options: Fan-out count, timeout and line mode
            token: Parent token for the attempt
            last_candidate: Completion shown most recently, if any

        Yields:
            Per-round results from all generation branches
        """
        prompt = await self.prepare(document, last_candidate)
        options = options or GenerateOptions()
        token = token or CancellationToken()

        finals: dict[int, CompletionResult] = {}
        async for results in self.provider.generate_completions(prompt, options, token):
            for result in results:
                if result.is_final:
                    finals[result.branch] = result
            yield results

        if self.session_logger is not None:
            self.session_logger.log_completion(
                document.uri,
                len(prompt.text),
                len(prompt.packed),
                [
                    {"branch": r.branch, "text": r.text, "error": r.error}
                    for r in sorted(finals.values(), key=lambda r: r.branch)
                ],
            )
