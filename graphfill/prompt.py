"""Fill-in-the-middle prompt construction under a character budget."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from graphfill.constants import FIM_PREFIX, FIM_RESPONSE, FIM_SUFFIX
from graphfill.models import ContextSnippet, DocumentContext, Message, display_path
from graphfill.text_processing import PrefixComponents, get_head_and_tail

CONTEXT_HEADER = "Context:\n"
CONTEXT_TRAILER = "\n"

PREAMBLE = (
    "You are a code completion AI. Fill in the code between the markers so that "
    "it joins the code before and after them."
)

INSTRUCTIONS = f"""Write only the code that belongs where {FIM_RESPONSE} is.
Do not repeat the code that comes before or after {FIM_RESPONSE}.
Match the indentation and style of the surrounding code.
If nothing is missing, leave the markers empty.
Enclose your answer in {FIM_RESPONSE} markers, without backticks."""


@dataclass
class PromptBudget:
    """Character budget for a prompt.

    Attributes:
        total_chars: Upper bound on the rendered prompt length
        fixed_chars: Length of everything except the packed snippets
    """

    total_chars: int
    fixed_chars: int

    @property
    def remaining(self) -> int:
        return self.total_chars - self.fixed_chars


@dataclass
class BuiltPrompt:
    """A prompt ready to send, plus what went into it."""

    messages: list[Message]
    prefix: PrefixComponents
    budget: PromptBudget
    packed: list[ContextSnippet] = field(default_factory=list)

    @property
    def text(self) -> str:
        return messages_to_text(self.messages)


def messages_to_text(messages: Sequence[Message]) -> str:
    """Flatten messages into the text the budget is measured against."""
    return "\n\n".join(
        f"{'Human' if m.speaker == 'human' else 'Assistant'}: {m.text}" for m in messages
    )


class PromptBuilder:
    """Builds fill-in-the-middle prompts with retrieved context."""

    def __init__(self, workspace_root: Optional[Path] = None):
        """Initialize prompt builder.

        Args:
            workspace_root: Root used to shorten file paths shown to the model
        """
        self.workspace_root = workspace_root

    def format_snippet(self, snippet: ContextSnippet) -> str:
        """Render one snippet as a context block."""
        name = snippet.symbol_name or display_path(snippet.source_uri, self.workspace_root)
        return (
            f"\n-TYPE: {snippet.kind}\n-NAME: {name}\n"
            f"-CONTENT: {snippet.content.rstrip()}\n---\n"
        )

    def render(self, document: DocumentContext, context_blocks: str = "") -> list[Message]:
        """Render the prompt messages around an already-packed context section."""
        grouped = f"{CONTEXT_HEADER}{context_blocks}{CONTEXT_TRAILER}" if context_blocks else ""
        file_path = display_path(document.uri, self.workspace_root)
        fim = f"{FIM_PREFIX}{document.prefix}{FIM_RESPONSE}{document.suffix}{FIM_SUFFIX}"

        human_text = (
            f"{PREAMBLE}\n{grouped}\n\n"
            f"Code from {file_path} file:\n{fim}\n\n"
            f"{INSTRUCTIONS}"
        )

        return [
            Message(speaker="human", text=human_text),
            Message(speaker="assistant", text=FIM_RESPONSE),
        ]

    def budget_for(self, document: DocumentContext, total_chars: int) -> PromptBudget:
        """Compute the budget left over for snippets.

        The fixed part includes the context header, which is only rendered
        when at least one snippet is packed.
        """
        fixed = len(messages_to_text(self.render(document)))
        fixed += len(CONTEXT_HEADER) + len(CONTEXT_TRAILER)
        return PromptBudget(total_chars=total_chars, fixed_chars=fixed)

    def build(
        self,
        document: DocumentContext,
        snippets: Sequence[ContextSnippet],
        total_chars: int,
    ) -> BuiltPrompt:
        """Build a prompt, packing ranked snippets while they fit.

        Packing stops at the first snippet that is empty or does not fit, so
        the result always holds a prefix of the ranked list.

        Args:
            document: Document context at the cursor
            snippets: Retrieved snippets, most relevant first
            total_chars: Character budget for the whole prompt

        Returns:
            BuiltPrompt
        """
        budget = self.budget_for(document, total_chars)
        remaining = budget.remaining

        packed: list[ContextSnippet] = []
        blocks: list[str] = []
        for snippet in snippets:
            block = self.format_snippet(snippet)
            if len(block) + 1 > remaining or not block:
                break
            packed.append(snippet)
            blocks.append(block)
            remaining -= len(block)

        return BuiltPrompt(
            messages=self.render(document, "".join(blocks)),
            prefix=get_head_and_tail(document.prefix),
            budget=budget,
            packed=packed,
        )
