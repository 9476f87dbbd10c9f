"""State models for LangGraph."""

from typing import Optional, TypedDict

from graphfill.models import ContextQuery, ContextSnippet, DocumentContext, LastCandidate
from graphfill.prompt import BuiltPrompt


class CompletionState(TypedDict, total=False):
    """The state object passed through the completion workflow.

    Attributes:
        document: Document context at the cursor
        last_candidate: Completion shown most recently, if any
        query: Query sent to the engine
        snippets: Retrieved context, most relevant first
        retrieval_ms: Time spent retrieving context
        prompt: Prompt built from the document and snippets
    """

    document: DocumentContext
    last_candidate: Optional[LastCandidate]
    query: ContextQuery
    snippets: list[ContextSnippet]
    retrieval_ms: float
    prompt: BuiltPrompt
