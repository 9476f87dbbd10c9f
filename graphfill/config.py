"""Configuration loading and management."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from graphfill.constants import (
    DEFAULT_COMPLETIONS,
    DEFAULT_ENGINE_PATH,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_SNIPPETS,
    DEFAULT_MODEL,
    DEFAULT_PROMPT_CHARS,
    DEFAULT_TIMEOUT_MS,
    SUPPORTED_MODELS,
)

logger = logging.getLogger(__name__)


class ProjectSettings(BaseModel):
    """Settings read from a project's .graphfill/config.json."""

    model_config = ConfigDict(extra="ignore")

    await_indexing: Optional[bool] = Field(None, alias="await-indexing")
    infer_parent_git_repositories: Optional[bool] = Field(None, alias="index-parent-git-folder")
    engine_path: Optional[str] = Field(None, alias="engine-path")
    default_model: Optional[str] = Field(None, alias="model")
    prompt_chars: Optional[int] = Field(None, alias="prompt-chars")
    timeout_ms: Optional[int] = Field(None, alias="timeout-ms")
    completions: Optional[int] = Field(None, alias="completions")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """graphfill configuration.

    Loads from .env and optionally .graphfill/config.json
    """

    # API Keys
    anthropic_api_key: Optional[str] = None

    # Model settings
    default_model: str = DEFAULT_MODEL

    # Engine settings
    engine_path: str = DEFAULT_ENGINE_PATH
    engine_verbose: bool = False
    await_indexing: bool = False
    infer_parent_git_repositories: bool = False

    # Retrieval limits
    max_snippets: int = DEFAULT_MAX_SNIPPETS
    max_depth: int = DEFAULT_MAX_DEPTH

    # Completion settings
    prompt_chars: int = DEFAULT_PROMPT_CHARS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    completions: int = DEFAULT_COMPLETIONS

    # Problems found while loading
    load_errors: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> "Config":
        """Load configuration from environment and project-specific config.

        Args:
            project_root: Project root directory (for .graphfill/config.json)

        Returns:
            Config instance
        """
        # Load .env file
        load_dotenv()

        config = cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("GRAPHFILL_MODEL", DEFAULT_MODEL),
            engine_path=os.getenv("GRAPHFILL_ENGINE_PATH", DEFAULT_ENGINE_PATH),
            engine_verbose=_env_flag("GRAPHFILL_ENGINE_VERBOSE"),
            await_indexing=_env_flag("GRAPHFILL_AWAIT_INDEXING"),
            infer_parent_git_repositories=_env_flag("GRAPHFILL_INDEX_PARENT_GIT_FOLDER"),
            max_snippets=int(os.getenv("GRAPHFILL_MAX_SNIPPETS", DEFAULT_MAX_SNIPPETS)),
            max_depth=int(os.getenv("GRAPHFILL_MAX_DEPTH", DEFAULT_MAX_DEPTH)),
            prompt_chars=int(os.getenv("GRAPHFILL_PROMPT_CHARS", DEFAULT_PROMPT_CHARS)),
            timeout_ms=int(os.getenv("GRAPHFILL_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)),
            completions=int(os.getenv("GRAPHFILL_COMPLETIONS", DEFAULT_COMPLETIONS)),
        )

        # Project settings override the environment
        if project_root:
            config_path = project_root / ".graphfill" / "config.json"
            if config_path.exists():
                try:
                    with open(config_path) as f:
                        project_config = json.load(f)
                except (json.JSONDecodeError, IOError) as e:
                    logger.warning("ignoring invalid %s: %s", config_path, e)
                else:
                    config.apply(project_config)

        return config

    def apply(self, settings: Any) -> None:
        """Apply settings from a project config file.

        Values are converted to the field types. Unknown keys are ignored; if
        any value is invalid nothing is applied and the problems are reported
        by validate().
        """
        try:
            parsed = ProjectSettings.model_validate(settings)
        except ValidationError as e:
            for error in e.errors():
                key = ".".join(str(part) for part in error["loc"]) or "config"
                self.load_errors.append(f"Invalid project setting {key}: {error['msg']}")
            return

        for attr, value in parsed.model_dump(exclude_none=True).items():
            setattr(self, attr, value)

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = list(self.load_errors)

        if not self.anthropic_api_key:
            errors.append("No API key found. Set ANTHROPIC_API_KEY")

        if self.default_model not in SUPPORTED_MODELS:
            errors.append(f"Unsupported model: {self.default_model}")

        if self.prompt_chars <= 0:
            errors.append("prompt_chars must be positive")

        if self.timeout_ms <= 0:
            errors.append("timeout_ms must be positive")

        if self.completions <= 0:
            errors.append("completions must be positive")

        if self.max_snippets <= 0 or self.max_depth <= 0:
            errors.append("max_snippets and max_depth must be positive")

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "default_model": self.default_model,
            "engine_path": self.engine_path,
            "await_indexing": self.await_indexing,
            "infer_parent_git_repositories": self.infer_parent_git_repositories,
            "max_snippets": self.max_snippets,
            "max_depth": self.max_depth,
            "prompt_chars": self.prompt_chars,
            "timeout_ms": self.timeout_ms,
            "completions": self.completions,
            "has_anthropic_key": bool(self.anthropic_api_key),
        }
