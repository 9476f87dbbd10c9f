"""Retrieval of graph context for the code around the cursor."""

import logging
from typing import Optional

from graphfill.constants import (
    DEFAULT_IDENTIFIER_COUNT,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_SNIPPETS,
    SUPPORTED_LANGUAGES,
)
from graphfill.engine.client import EngineClient
from graphfill.engine.indexing import IndexingSupervisor
from graphfill.identifiers import extract_identifiers
from graphfill.models import ContextQuery, ContextSnippet, DocumentContext, LastCandidate

logger = logging.getLogger(__name__)


class GraphContextRetriever:
    """Turns a cursor position into ranked snippets from the engine."""

    def __init__(
        self,
        client: EngineClient,
        supervisor: Optional[IndexingSupervisor] = None,
        await_indexing: bool = False,
        max_snippets: int = DEFAULT_MAX_SNIPPETS,
        max_depth: int = DEFAULT_MAX_DEPTH,
        identifier_count: int = DEFAULT_IDENTIFIER_COUNT,
    ):
        """Initialize retriever.

        Args:
            client: Engine client
            supervisor: Indexing supervisor whose initial indexing may be awaited
            await_indexing: Wait for initial indexing before querying
            max_snippets: Snippet limit sent to the engine
            max_depth: Graph depth limit sent to the engine
            identifier_count: Identifiers taken from each source
        """
        self.client = client
        self.supervisor = supervisor
        self.await_indexing = await_indexing
        self.max_snippets = max_snippets
        self.max_depth = max_depth
        self.identifier_count = identifier_count

    @staticmethod
    def is_supported_for_language_id(language_id: str) -> bool:
        return language_id in SUPPORTED_LANGUAGES

    def build_query(self, document: DocumentContext, last_candidate: Optional[LastCandidate] = None) -> ContextQuery:
        return ContextQuery(
            document_uri=document.uri,
            identifiers=extract_identifiers(document, last_candidate, self.identifier_count),
            max_snippets=self.max_snippets,
            max_depth=self.max_depth,
        )

    async def retrieve(
        self,
        document: DocumentContext,
        last_candidate: Optional[LastCandidate] = None,
    ) -> list[ContextSnippet]:
        """Fetch snippets for the document at the cursor.

        Returns an empty list for unsupported languages, when there is
        nothing to look up, or when the engine is unavailable.
        """
        return await self.lookup(document, self.build_query(document, last_candidate))

    async def lookup(self, document: DocumentContext, query: ContextQuery) -> list[ContextSnippet]:
        """Run an already-built query for document."""
        if not self.is_supported_for_language_id(document.language_id):
            logger.debug("language %s not supported by engine", document.language_id)
            return []

        if self.await_indexing and self.supervisor is not None:
            await self.supervisor.wait_for_indexing()

        if not query.identifiers:
            return []

        return await self.client.query_context(query)
