"""Fill-in-the-middle completion provider."""

from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

from graphfill.cancellation import CancellationToken
from graphfill.constants import DEFAULT_PROMPT_CHARS, FIM_RESPONSE, FIM_SUFFIX
from graphfill.llm import LLM, ModelBackend, ModelDescriptor
from graphfill.models import CompletionResult, ContextSnippet, DocumentContext, SamplingParams
from graphfill.orchestrator import CompletionOrchestrator, GenerateOptions
from graphfill.prompt import BuiltPrompt, PromptBuilder
from graphfill.text_processing import fix_bad_completion_start


class FimProvider:
    """Builds prompts for a model and turns its output into completions."""

    stop_sequences = [FIM_RESPONSE]
    temperature = 0.0
    top_p = 0.95

    def __init__(
        self,
        backend: ModelBackend,
        descriptor: ModelDescriptor,
        prompt_chars: int = DEFAULT_PROMPT_CHARS,
        workspace_root: Optional[Path] = None,
    ):
        """Initialize provider.

        Args:
            backend: Model backend used for generation
            descriptor: Model the requests are addressed to
            prompt_chars: Character budget for each prompt
            workspace_root: Root used to shorten file paths in prompts
        """
        self.descriptor = descriptor
        self.prompt_chars = prompt_chars
        self.prompt_builder = PromptBuilder(workspace_root)
        self.orchestrator = CompletionOrchestrator(backend, post_process=self.post_process)

    def sampling_params(self) -> SamplingParams:
        return SamplingParams(
            model=self.descriptor.name,
            temperature=self.temperature,
            top_p=self.top_p,
            max_tokens=self.descriptor.max_output_tokens,
            stop_sequences=list(self.stop_sequences),
        )

    def build_prompt(self, document: DocumentContext, snippets: Sequence[ContextSnippet]) -> BuiltPrompt:
        return self.prompt_builder.build(document, snippets, self.prompt_chars)

    def generate_completions(
        self,
        prompt: BuiltPrompt,
        options: GenerateOptions,
        token: CancellationToken,
    ) -> AsyncIterator[list[CompletionResult]]:
        """Fan out generation for a built prompt.

        Args:
            prompt: Prompt from build_prompt
            options: Fan-out count and per-branch timeout
            token: Parent token for the whole attempt

        Returns:
            Merged per-round results
        """
        return self.orchestrator.generate(prompt.messages, self.sampling_params(), options, token)

    @staticmethod
    def post_process(raw: str) -> str:
        """Strip FIM markers and leading noise from raw model output."""
        completion = raw.replace(FIM_RESPONSE, "").replace(FIM_SUFFIX, "")
        return fix_bad_completion_start(completion)


def create_provider(
    model: str,
    backend: ModelBackend,
    prompt_chars: int = DEFAULT_PROMPT_CHARS,
    workspace_root: Optional[Path] = None,
) -> FimProvider:
    """Create a provider for a supported model string.

    Raises:
        ValueError: If the model is not supported
    """
    descriptor = LLM.parse_model_string(model)
    return FimProvider(backend, descriptor, prompt_chars=prompt_chars, workspace_root=workspace_root)
