"""LLM abstraction layer for Anthropic Claude models."""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Literal, Protocol, Sequence

from anthropic import APIError, AsyncAnthropic

from graphfill.cancellation import CancellationToken
from graphfill.constants import SUPPORTED_MODELS
from graphfill.errors import ModelError
from graphfill.models import Message, SamplingParams

logger = logging.getLogger(__name__)


class ModelBackend(Protocol):
    """Anything that can stream a completion for a list of messages."""

    def submit(
        self,
        messages: Sequence[Message],
        sampling: SamplingParams,
        timeout_ms: int,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Stream text deltas; raise ModelError on backend failure."""
        ...


@dataclass
class ModelDescriptor:
    """Descriptor for an LLM model."""

    provider: Literal["anthropic"]
    name: str
    max_output_tokens: int


class LLM:
    """Anthropic Claude streaming backend."""

    def __init__(self, descriptor: ModelDescriptor, api_key: str):
        """Initialize LLM client.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
        """
        self.descriptor = descriptor

        if descriptor.provider != "anthropic":
            raise ValueError(f"Only Anthropic models are supported. Got: {descriptor.provider}")

        self.client = AsyncAnthropic(api_key=api_key)

    def _request_kwargs(self, messages: Sequence[Message], sampling: SamplingParams) -> dict[str, Any]:
        chat_messages = [
            {"role": "user" if m.speaker == "human" else "assistant", "content": m.text}
            for m in messages
        ]

        kwargs: dict[str, Any] = {
            "model": sampling.model or self.descriptor.name,
            "messages": chat_messages,
            "temperature": sampling.temperature,
            "max_tokens": min(sampling.max_tokens, self.descriptor.max_output_tokens),
        }

        if sampling.top_p is not None:
            kwargs["top_p"] = sampling.top_p

        if sampling.stop_sequences:
            kwargs["stop_sequences"] = list(sampling.stop_sequences)

        return kwargs

    async def submit(
        self,
        messages: Sequence[Message],
        sampling: SamplingParams,
        timeout_ms: int,
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Stream a completion.

        Args:
            messages: Prompt turns; a trailing assistant turn is sent as prefill
            sampling: Sampling parameters
            timeout_ms: Request timeout
            token: Streaming stops once this is cancelled

        Yields:
            Text deltas as they arrive

        Raises:
            ModelError: If the API reports an error
        """
        kwargs = self._request_kwargs(messages, sampling)

        try:
            async with self.client.messages.stream(**kwargs, timeout=timeout_ms / 1000) as stream:
                async for text in stream.text_stream:
                    if token.cancelled:
                        logger.debug("stream cancelled: %s", token.reason)
                        break
                    yield text
        except APIError as e:
            raise ModelError(str(e)) from e

    @classmethod
    def parse_model_string(cls, model_str: str) -> ModelDescriptor:
        """Parse model string into ModelDescriptor.

        Args:
            model_str: Model string (e.g., "anthropic:claude-haiku-4-5")

        Returns:
            ModelDescriptor

        Raises:
            ValueError: If model string is invalid
        """
        if model_str not in SUPPORTED_MODELS:
            raise ValueError(
                f"Unsupported model: {model_str}. "
                f"Supported: {', '.join(SUPPORTED_MODELS.keys())}"
            )

        model_config = SUPPORTED_MODELS[model_str]
        return ModelDescriptor(
            provider=model_config["provider"],
            name=model_config["name"],
            max_output_tokens=model_config["max_output_tokens"],
        )

    @classmethod
    def list_models(cls) -> list[str]:
        """List all supported model strings.

        Returns:
            List of model strings
        """
        return list(SUPPORTED_MODELS.keys())
