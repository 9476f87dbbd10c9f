"""Value types shared across the retrieval and completion pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional
from urllib.parse import quote, unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from graphfill.cancellation import CancellationToken


def file_uri(path: str) -> str:
    """Turn a filesystem path into a file:// URI (URIs pass through unchanged)."""
    if "://" in path:
        return path
    return "file://" + quote(str(Path(path).absolute()))


def uri_to_path(uri: str) -> Path:
    """Inverse of file_uri for file:// URIs."""
    parsed = urlparse(uri)
    if parsed.scheme and parsed.scheme != "file":
        raise ValueError(f"Not a file URI: {uri}")
    return Path(unquote(parsed.path if parsed.scheme else uri))


def display_path(uri: str, workspace_root: Optional[Path] = None) -> str:
    """Path shown to the model: workspace-relative when possible."""
    try:
        path = uri_to_path(uri)
    except ValueError:
        return uri
    if workspace_root is not None:
        try:
            return path.relative_to(workspace_root).as_posix()
        except ValueError:
            pass
    return path.as_posix()


@dataclass
class RepositoryRevision:
    """Last revision of a repository submitted for indexing."""

    repository_uri: str
    commit: str


@dataclass
class SimpleRepository:
    """A git repository as observed in the workspace."""

    uri: str
    commit: Optional[str] = None


@dataclass
class ContextQuery:
    """One engine lookup for the identifiers around the cursor."""

    document_uri: str
    identifiers: list[str] = field(default_factory=list)
    max_snippets: int = 20
    max_depth: int = 4

    def __post_init__(self) -> None:
        self.identifiers = list(dict.fromkeys(self.identifiers))

    def to_params(self) -> dict[str, Any]:
        return {
            "uri": self.document_uri,
            "identifiers": self.identifiers,
            "maxSnippets": self.max_snippets,
            "maxDepth": self.max_depth,
        }


@dataclass(frozen=True)
class ContextSnippet:
    """A unit of retrieved context: a symbol definition or a file excerpt."""

    source_uri: str
    content: str
    symbol_name: Optional[str] = None

    @property
    def kind(self) -> Literal["symbol", "file"]:
        return "symbol" if self.symbol_name else "file"


class EngineSymbol(BaseModel):
    """A snippet as the engine reports it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_name: str = Field(alias="fileName")
    symbol: Optional[str] = None
    content: str

    def to_snippet(self) -> ContextSnippet:
        return ContextSnippet(
            source_uri=file_uri(self.file_name),
            content=self.content,
            symbol_name=self.symbol or None,
        )


class ContextResponse(BaseModel):
    """Validated result of engine/contextForIdentifiers."""

    model_config = ConfigDict(extra="ignore")

    symbols: list[EngineSymbol] = Field(default_factory=list)

    @field_validator("symbols", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def snippets(self) -> list[ContextSnippet]:
        return [symbol.to_snippet() for symbol in self.symbols]


@dataclass
class MalformedResponse:
    """Outcome of a response that failed validation."""

    reason: str
    raw: Any = None


def parse_context_response(raw: Any) -> "ContextResponse | MalformedResponse":
    """Validate a raw engine response.

    Args:
        raw: Decoded JSON result of engine/contextForIdentifiers

    Returns:
        ContextResponse, or MalformedResponse when the payload is not a
        well-formed object
    """
    if not isinstance(raw, dict):
        return MalformedResponse(reason=f"expected object, got {type(raw).__name__}", raw=raw)
    try:
        return ContextResponse.model_validate(raw)
    except ValidationError as e:
        return MalformedResponse(reason=str(e), raw=raw)


class ProcessState(Enum):
    """Lifecycle of the engine process."""

    NOT_STARTED = "not_started"
    STARTING = "starting"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass
class DocumentContext:
    """The document around the cursor."""

    uri: str
    language_id: str
    prefix: str
    suffix: str

    @property
    def current_line_prefix(self) -> str:
        return self.prefix.rsplit("\n", 1)[-1]

    @classmethod
    def from_text(
        cls,
        uri: str,
        language_id: str,
        text: str,
        line: int,
        character: int,
    ) -> "DocumentContext":
        """Split document text at a zero-based (line, character) position.

        Positions past the end of a line or the document are clamped.
        """
        lines = text.split("\n")
        line = max(0, min(line, len(lines) - 1))
        character = max(0, min(character, len(lines[line])))
        offset = sum(len(l) + 1 for l in lines[:line]) + character
        return cls.from_offset(uri, language_id, text, offset)

    @classmethod
    def from_offset(cls, uri: str, language_id: str, text: str, offset: int) -> "DocumentContext":
        offset = max(0, min(offset, len(text)))
        return cls(uri=uri, language_id=language_id, prefix=text[:offset], suffix=text[offset:])


@dataclass
class LastCandidate:
    """The completion shown most recently, with the line it was triggered on."""

    trigger_line_prefix: str
    insert_text: str


@dataclass
class Message:
    """A prompt turn."""

    speaker: Literal["human", "assistant"]
    text: str


@dataclass
class SamplingParams:
    """Sampling parameters forwarded to the model backend."""

    model: str
    temperature: float = 0.0
    top_p: Optional[float] = None
    max_tokens: int = 256
    stop_sequences: list[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    """A partial or final completion from one generation branch."""

    branch: int
    text: str
    raw: str = ""
    is_final: bool = False
    error: Optional[str] = None


@dataclass
class GenerationRequest:
    """One branch of a fanned-out completion attempt."""

    messages: list[Message]
    sampling: SamplingParams
    timeout_ms: int
    token: CancellationToken
